import setuptools

try:
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = "Cross-compile release binaries and publish multi-architecture images"

setuptools.setup(
    name="xrelease",
    version="0.1.0",
    description="Cross-compile release binaries and publish multi-architecture images",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src", include=["xrelease", "xrelease.*"]),
    package_data={
        "xrelease": ["templates/*"],
    },
    include_package_data=True,
    install_requires=[
        "boto3",
        "botocore",
        "pydantic>=2",
        "python-dotenv",
        "rich",
        "typer",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "xrelease=xrelease.cli.main:app",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
)
