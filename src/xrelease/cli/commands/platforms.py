"""xrelease platforms command - show the architecture mapping."""

from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .run import load_config

console = Console()


def platforms_command(config_file: Optional[Path] = None):
    """Print every target triple with its container platform tag."""
    config = load_config(config_file)
    used = {t.architecture for t in config.build_targets}

    table = Table(title="Architecture mapping")
    table.add_column("Target triple", style="cyan")
    table.add_column("Platform")
    table.add_column("In use")

    for triple, platform in sorted(config.mapping.items()):
        table.add_row(triple, platform, "✓" if triple in used else "")

    console.print(table)
