"""Main CLI entry point for xrelease."""

from importlib import metadata
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console


def get_version() -> str:
    """Get the package version from metadata."""
    try:
        return metadata.version("xrelease")
    except metadata.PackageNotFoundError:
        return "unknown"


console = Console()

# command: xrelease
app = typer.Typer(
    name="xrelease",
    help="Cross-compile release binaries and publish multi-architecture images",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command("run")
def run_cmd(
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON pipeline config file"
    ),
    targets: Optional[List[str]] = typer.Option(
        None, "--target", "-t", help="Build target as PACKAGE@TRIPLE (repeatable)"
    ),
    repository: Optional[str] = typer.Option(None, help="Image repository name"),
    region: Optional[str] = typer.Option(None, help="Registry API region"),
    registry: Optional[str] = typer.Option(
        None, help="Registry host and alias, e.g. public.ecr.aws/abc123"
    ),
    tag: Optional[str] = typer.Option(None, "--tag", help="Shared image tag"),
    staging_root: Optional[Path] = typer.Option(None, help="Staging tree root"),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-j", min=1, help="Parallel builds"
    ),
    fail_fast: bool = typer.Option(
        False, "--fail-fast", help="Cancel remaining builds after the first failure"
    ),
    no_login: bool = typer.Option(
        False, "--no-login", help="Use an existing docker login"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Build, collect, provision and publish."""
    from .commands.run import run_command

    return run_command(
        config_file=config_file,
        targets=targets,
        repository=repository,
        region=region,
        registry=registry,
        tag=tag,
        staging_root=staging_root,
        concurrency=concurrency,
        fail_fast=fail_fast,
        no_login=no_login,
        as_json=as_json,
    )


@app.command("platforms")
def platforms_cmd(
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON pipeline config file"
    ),
):
    """Show the architecture to platform mapping."""
    from .commands.platforms import platforms_command

    return platforms_command(config_file)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
):
    """xrelease - multi-architecture release pipeline."""
    if version:
        console.print(f"xrelease v{get_version()}")
        raise typer.Exit()


if __name__ == "__main__":
    app()
