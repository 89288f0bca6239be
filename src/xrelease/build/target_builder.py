"""
Cross-compilation of release binaries.

Handles invoking the external toolchain for one target triple at a time.
"""

import logging
from pathlib import Path
from typing import List, Mapping, Optional

from ..config import DEFAULT_TOOLCHAIN, STDERR_TAIL_LINES
from ..exceptions import BuildError
from ..models import ArchitectureMapping, ArtifactBundle, BuildTarget, ReleaseFlags
from ..utils.process import CommandRunner, run_command

log = logging.getLogger(__name__)


class TargetBuilder:
    """Build one package for one architecture with the cross toolchain."""

    def __init__(
        self,
        mapping: ArchitectureMapping,
        workspace: Path = Path("."),
        target_dir: Path = Path("target"),
        toolchain: str = DEFAULT_TOOLCHAIN,
        binaries: Optional[Mapping[str, List[str]]] = None,
        runner: CommandRunner = run_command,
    ):
        """
        Initialize target builder.

        Args:
            mapping: Architecture mapping every target must resolve through
            workspace: Directory the toolchain is run from
            target_dir: Toolchain output directory, relative to workspace
            toolchain: Toolchain executable (``cross`` or ``cargo``)
            binaries: Binary names produced per package
            runner: Async command runner
        """
        self.mapping = mapping
        self.workspace = Path(workspace)
        self.target_dir = Path(target_dir)
        self.toolchain = toolchain
        self.binaries = dict(binaries or {})
        self.runner = runner

    def command_for(self, target: BuildTarget) -> List[str]:
        return [
            self.toolchain,
            "build",
            "--release",
            "--target",
            target.architecture,
            "--package",
            target.package,
        ]

    def output_dir(self, target: BuildTarget) -> Path:
        return self.workspace / self.target_dir / target.architecture / "release"

    def expected_binaries(self, target: BuildTarget) -> List[Path]:
        names = self.binaries.get(target.package) or [target.package]
        output_dir = self.output_dir(target)
        return [output_dir / name for name in names]

    async def build(self, target: BuildTarget, flags: ReleaseFlags) -> ArtifactBundle:
        """
        Build a single target.

        Args:
            target: Package and architecture to compile
            flags: Release flags, turned into toolchain env for this target only

        Returns:
            ArtifactBundle listing the produced binaries

        Raises:
            UnknownArchitecture: If the triple has no platform mapping
            BuildError: If the toolchain exits nonzero or a binary is missing
        """
        self.mapping.platform_for(target.architecture)

        if not self.workspace.is_dir():
            raise BuildError(
                target, 127, f"workspace {self.workspace} is not a directory"
            )

        command = self.command_for(target)
        log.info(f"Building {target.label}")

        try:
            result = await self.runner(
                command,
                cwd=self.workspace,
                env=flags.environment_for(target.architecture),
            )
        except FileNotFoundError as e:
            raise BuildError(target, 127, f"{self.toolchain} not found: {e}") from e
        except OSError as e:
            # 126: found but not executable, as a shell reports it
            raise BuildError(
                target, 126, f"{self.toolchain} could not be started: {e}"
            ) from e

        if not result.ok:
            stderr_tail = result.stderr_tail(STDERR_TAIL_LINES)
            log.error(f"Build failed for {target.label} (exit {result.returncode})")
            raise BuildError(target, result.returncode, stderr_tail)

        paths = self.expected_binaries(target)
        missing = [p for p in paths if not p.is_file()]
        if missing:
            raise BuildError(
                target,
                result.returncode,
                "expected binaries not produced: "
                + ", ".join(str(p) for p in missing),
            )

        log.info(f"Built {target.label}: {', '.join(p.name for p in paths)}")
        return ArtifactBundle(target=target, binary_paths=tuple(paths))
