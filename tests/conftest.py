"""
Test configuration and fixtures for xrelease tests.

Provides shared fixtures for:
- A fake command runner standing in for the toolchain and docker
- A fake registry API client
- Pipeline configurations rooted in a temporary directory
"""

import base64
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest
from botocore.exceptions import ClientError

from xrelease.config import PipelineConfig
from xrelease.registry.provisioner import RegistryProvisioner
from xrelease.utils.process import CommandResult

ARCH64 = "aarch64-unknown-linux-musl"
ARCH32 = "x86_64-unknown-linux-musl"
MAPPING = {ARCH64: "linux/arm64", ARCH32: "linux/amd64"}


def client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeRunner:
    """Records commands and emulates the cross toolchain and docker."""

    def __init__(self, workspace: Path, binaries: Optional[Dict[str, List[str]]] = None):
        self.workspace = Path(workspace)
        self.binaries = binaries or {}
        self.calls: List[Dict] = []
        self.build_failures: Dict[Tuple[str, str], int] = {}
        self.push_failures: Dict[str, str] = {}
        self.finalize_failure: Optional[str] = None
        self.login_failure: Optional[str] = None
        self.pushed: Dict[str, str] = {}
        self.manifests: Dict[str, List[str]] = {}
        self.builds: List[Tuple[str, str]] = []

    def commands(self, program: str) -> List[List[str]]:
        return [c["command"] for c in self.calls if c["command"][0] == program]

    async def __call__(self, command, cwd=None, env=None, stdin=None):
        command = list(command)
        self.calls.append({"command": command, "cwd": cwd, "env": env, "stdin": stdin})

        if command[0] in ("cross", "cargo"):
            return self._build(command, cwd)
        if command[:2] == ["docker", "login"]:
            if self.login_failure:
                return CommandResult(command, 1, stderr=self.login_failure)
            return CommandResult(command, 0, stdout="Login Succeeded")
        if command[:3] == ["docker", "buildx", "build"]:
            return self._push(command)
        if command[:4] == ["docker", "buildx", "imagetools", "create"]:
            return self._finalize(command)
        return CommandResult(command, 127, stderr=f"unknown command {command[0]}")

    def _build(self, command, cwd=None):
        triple = command[command.index("--target") + 1]
        package = command[command.index("--package") + 1]
        self.builds.append((package, triple))

        if (package, triple) in self.build_failures:
            return CommandResult(
                command,
                self.build_failures[(package, triple)],
                stderr="   Compiling\nerror: linking with `cc` failed\n",
            )

        output_dir = Path(cwd or self.workspace) / "target" / triple / "release"
        output_dir.mkdir(parents=True, exist_ok=True)
        for name in self.binaries.get(package, [package]):
            (output_dir / name).write_text(f"{name} for {triple}, build {len(self.builds)}")
        return CommandResult(command, 0, stderr="    Finished release")

    def _push(self, command):
        platform = command[command.index("--platform") + 1]
        image = command[command.index("--tag") + 1]
        if platform in self.push_failures:
            return CommandResult(command, 1, stderr=self.push_failures[platform])
        self.pushed[image] = platform
        return CommandResult(command, 0)

    def _finalize(self, command):
        tag = command[command.index("--tag") + 1]
        if self.finalize_failure:
            return CommandResult(command, 1, stderr=self.finalize_failure)
        self.manifests[tag] = command[command.index("--tag") + 2 :]
        return CommandResult(command, 0)


class FakeRegistryClient:
    """In-memory stand-in for the ecr-public API."""

    def __init__(self, alias: str = "public.ecr.aws/alias"):
        self.alias = alias
        self.repositories: Dict[str, str] = {}
        self.create_calls: List[str] = []
        self.describe_calls: List[str] = []
        self.create_error: Optional[Exception] = None
        self.describe_error: Optional[Exception] = None
        self.created_by_other: Set[str] = set()

    def describe_repositories(self, repositoryNames):
        name = repositoryNames[0]
        self.describe_calls.append(name)
        if self.describe_error is not None:
            raise self.describe_error
        if name not in self.repositories:
            raise client_error("RepositoryNotFoundException", "DescribeRepositories")
        return {"repositories": [{"repositoryName": name, "repositoryUri": self.repositories[name]}]}

    def create_repository(self, repositoryName):
        self.create_calls.append(repositoryName)
        if self.create_error is not None:
            raise self.create_error
        if repositoryName in self.created_by_other:
            self.repositories[repositoryName] = f"{self.alias}/{repositoryName}"
        if repositoryName in self.repositories:
            raise client_error("RepositoryAlreadyExistsException", "CreateRepository")
        uri = f"{self.alias}/{repositoryName}"
        self.repositories[repositoryName] = uri
        return {"repository": {"repositoryName": repositoryName, "repositoryUri": uri}}

    def get_authorization_token(self):
        token = base64.b64encode(b"AWS:s3cret").decode()
        return {"authorizationData": {"authorizationToken": token}}


@pytest.fixture(autouse=True)
def reset_provisioning_locks():
    """Provisioning locks are shared per class; start each test clean."""
    RegistryProvisioner._locks = {}
    yield
    RegistryProvisioner._locks = {}


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def fake_runner(workspace: Path) -> FakeRunner:
    return FakeRunner(workspace)


@pytest.fixture
def registry_client() -> FakeRegistryClient:
    return FakeRegistryClient()


@pytest.fixture
def pipeline_config(tmp_path: Path, workspace: Path) -> PipelineConfig:
    """Two-architecture config matching the demo release scenario."""
    return PipelineConfig(
        targets=[f"pkgA@{ARCH64}", f"pkgA@{ARCH32}"],
        architectures=MAPPING,
        workspace=workspace,
        staging_root=tmp_path / "staging",
        repository="demo",
        region="us-east-1",
        max_concurrency=2,
    )


@pytest.fixture
def make_client_error():
    """Factory for botocore ClientError with a given error code."""
    return client_error
