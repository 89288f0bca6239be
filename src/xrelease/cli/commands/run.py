"""xrelease run command - execute the release pipeline."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ...config import PipelineConfig
from ...models import PipelineResult, StageStatus
from ...pipeline import PipelineOrchestrator

console = Console()

STATUS_STYLES = {
    StageStatus.SUCCEEDED: "green",
    StageStatus.FAILED: "red",
    StageStatus.SKIPPED: "yellow",
    StageStatus.CANCELLED: "dim",
}


def load_config(config_file: Optional[Path], **overrides: Any) -> PipelineConfig:
    """Load config from file or environment with non-empty CLI overrides on top."""
    updates = {k: v for k, v in overrides.items() if v not in (None, [], False)}
    try:
        if config_file is not None:
            config = PipelineConfig.from_file(config_file, updates)
        else:
            config = PipelineConfig.from_environment(overrides=updates)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] Config file not found: {e.filename}")
        raise typer.Exit(2)
    except (ValidationError, ValueError) as e:
        console.print("[red]Error:[/red] Invalid configuration")
        console.print(str(e), markup=False)
        raise typer.Exit(2)
    return config


def _styled(status: StageStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def display_result(result: PipelineResult) -> None:
    if result.error is not None:
        console.print(f"[red]Error:[/red] {escape(str(result.error))}")
        return

    table = Table(title="Release pipeline")
    table.add_column("Stage", style="bold")
    table.add_column("Subject")
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")

    for target_result in result.targets:
        detail = (
            ", ".join(p.name for p in target_result.binaries)
            if target_result.succeeded
            else escape(str(target_result.error or ""))
        )
        table.add_row(
            target_result.stage.value,
            f"{target_result.target.label} -> {target_result.platform}",
            _styled(target_result.status),
            detail,
        )

    for stage_result in (result.provision, result.publish):
        if stage_result is None:
            continue
        details = stage_result.details
        subject = details.get("image") or details.get("repository") or ""
        detail = (
            escape(f"{type(stage_result.error).__name__}: {stage_result.error}")
            if stage_result.error
            else details.get("reason", "")
        )
        table.add_row(
            stage_result.stage.value, subject, _styled(stage_result.status), detail
        )

    console.print(table)

    if result.success:
        console.print(f"[green]✓ Published {result.publish.details['image']}[/green]")
    else:
        console.print(
            f"[red]✗ Release failed ({len(result.failures())} failure(s))[/red]"
        )


def run_command(
    config_file: Optional[Path] = None,
    targets: Optional[List[str]] = None,
    repository: Optional[str] = None,
    region: Optional[str] = None,
    registry: Optional[str] = None,
    tag: Optional[str] = None,
    staging_root: Optional[Path] = None,
    concurrency: Optional[int] = None,
    fail_fast: bool = False,
    no_login: bool = False,
    as_json: bool = False,
):
    """Run the release pipeline and exit with its status code."""
    overrides: Dict[str, Any] = {
        "targets": list(targets or []),
        "repository": repository,
        "region": region,
        "registry": registry,
        "image_tag": tag,
        "staging_root": staging_root,
        "max_concurrency": concurrency,
        "fail_fast": fail_fast,
    }
    config = load_config(config_file, **overrides)
    if no_login:
        config = config.model_copy(update={"login": False})

    result = asyncio.run(PipelineOrchestrator(config).run())

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        display_result(result)

    raise typer.Exit(result.exit_code)
