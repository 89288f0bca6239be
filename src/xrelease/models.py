"""
Core data types for the release pipeline.

BuildTarget and ReleaseFlags describe what to compile, ArchitectureMapping
resolves target triples to container platforms, and the StagingTree holds
collected binaries until they are published.
"""

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .exceptions import ReleaseError, UnknownArchitecture

log = logging.getLogger(__name__)

DEFAULT_ARCHITECTURES: Dict[str, str] = {
    "aarch64-unknown-linux-musl": "linux/arm64",
    "x86_64-unknown-linux-musl": "linux/amd64",
}


def platform_parts(platform: str) -> List[str]:
    """Split a platform tag such as ``linux/arm64`` into path segments."""
    parts = [p for p in str(platform).split("/") if p]
    if not parts or any(p in (".", "..") for p in parts):
        raise ValueError(f"Invalid platform tag: {platform!r}")
    return parts


@dataclass(frozen=True)
class BuildTarget:
    """One (package, architecture) pair to cross-compile."""

    package: str
    architecture: str

    @property
    def label(self) -> str:
        return f"{self.package}@{self.architecture}"

    @classmethod
    def parse(cls, value: str) -> "BuildTarget":
        """Parse a ``package@triple`` string."""
        package, sep, architecture = value.partition("@")
        if not sep or not package or not architecture:
            raise ValueError(f"Invalid target '{value}', expected PACKAGE@TRIPLE")
        return cls(package=package.strip(), architecture=architecture.strip())


@dataclass(frozen=True)
class ReleaseFlags:
    """Optimization and debug-strip options passed to every build."""

    strip_debug_info: bool = True
    extra_rustflags: Tuple[str, ...] = ()

    def rustflags(self) -> str:
        flags = []
        if self.strip_debug_info:
            flags.append("-C strip=debuginfo")
        flags.extend(self.extra_rustflags)
        return " ".join(flags)

    def environment_for(self, architecture: str) -> Dict[str, str]:
        """Toolchain environment scoped to a single target triple."""
        rustflags = self.rustflags()
        if not rustflags:
            return {}
        key = "CARGO_TARGET_{}_RUSTFLAGS".format(
            architecture.upper().replace("-", "_")
        )
        return {key: rustflags}


class ArchitectureMapping(Mapping[str, str]):
    """Static lookup table from target triple to container platform tag."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        source = DEFAULT_ARCHITECTURES if entries is None else entries
        self._entries = MappingProxyType(dict(source))

    def __getitem__(self, architecture: str) -> str:
        return self._entries[architecture]

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ArchitectureMapping({dict(self._entries)!r})"

    def platform_for(self, architecture: str) -> str:
        try:
            return self._entries[architecture]
        except KeyError:
            raise UnknownArchitecture(architecture) from None

    def require(self, targets: Iterable[BuildTarget]) -> None:
        """Raise UnknownArchitecture for the first target that does not resolve."""
        for target in targets:
            self.platform_for(target.architecture)

    def platforms_for(self, targets: Iterable[BuildTarget]) -> List[str]:
        return sorted({self.platform_for(t.architecture) for t in targets})


@dataclass(frozen=True)
class ArtifactBundle:
    """Binaries produced by one build, awaiting collection."""

    target: BuildTarget
    binary_paths: Tuple[Path, ...]

    @property
    def architecture(self) -> str:
        return self.target.architecture


class StagingTree:
    """
    Platform-keyed directory of final binaries.

    Layout is ``{root}/{platform_tag}/{binary}``. A platform tag such as
    ``linux/arm64`` becomes nested directories, which is the layout the
    multi-platform Dockerfile expects via ``TARGETPLATFORM``.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"StagingTree({str(self.root)!r})"

    def platform_dir(self, platform: str) -> Path:
        return self.root.joinpath(*platform_parts(platform))

    def binaries(self, platform: str) -> List[Path]:
        directory = self.platform_dir(platform)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.iterdir() if p.is_file())

    def missing(self, platforms: Iterable[str]) -> List[str]:
        return sorted(p for p in set(platforms) if not self.binaries(p))

    def platforms(self, candidates: Iterable[str]) -> List[str]:
        """Return the candidate platform tags that currently hold binaries."""
        return sorted(p for p in set(candidates) if self.binaries(p))

    def reset(self) -> None:
        """Remove all staged content and recreate an empty root."""
        if self.root.exists():
            log.debug(f"Clearing staging tree {self.root}")
            shutil.rmtree(self.root)
        self.root.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class RepositoryHandle:
    """Identifies a remote image repository by name and region."""

    name: str
    region: str
    uri: Optional[str] = None

    def image_ref(self, tag: str) -> str:
        return f"{self.uri or self.name}:{tag}"


class Stage(str, Enum):
    BUILD = "build"
    COLLECT = "collect"
    PROVISION = "provision"
    PUBLISH = "publish"


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class TargetResult:
    """Outcome of build and collection for one target."""

    target: BuildTarget
    status: StageStatus
    stage: Stage = Stage.COLLECT
    platform: Optional[str] = None
    binaries: List[Path] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCEEDED


@dataclass
class StageResult:
    """Outcome of a run-wide stage (provision or publish)."""

    stage: Stage
    status: StageStatus
    error: Optional[BaseException] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCEEDED


def _error_name(error: Optional[BaseException]) -> Optional[str]:
    return type(error).__name__ if error is not None else None


@dataclass
class PipelineResult:
    """Aggregated outcome of a pipeline run."""

    targets: List[TargetResult] = field(default_factory=list)
    provision: Optional[StageResult] = None
    publish: Optional[StageResult] = None
    error: Optional[ReleaseError] = None

    @property
    def success(self) -> bool:
        return (
            self.error is None
            and bool(self.targets)
            and all(t.succeeded for t in self.targets)
            and self.provision is not None
            and self.provision.succeeded
            and self.publish is not None
            and self.publish.succeeded
        )

    @property
    def exit_code(self) -> int:
        if self.success:
            return 0
        if isinstance(self.error, UnknownArchitecture):
            return 2
        return 1

    def failures(self) -> List[Dict[str, Optional[str]]]:
        """One entry per failed target, platform or stage."""
        entries: List[Dict[str, Optional[str]]] = []
        if self.error is not None:
            entries.append(
                {
                    "stage": "config",
                    "subject": None,
                    "error": _error_name(self.error),
                    "message": str(self.error),
                }
            )
        for result in self.targets:
            if not result.succeeded:
                entries.append(
                    {
                        "stage": result.stage.value,
                        "subject": result.target.label,
                        "error": _error_name(result.error) or result.status.value,
                        "message": str(result.error) if result.error else "",
                    }
                )
        for stage_result in (self.provision, self.publish):
            if stage_result is None or stage_result.status != StageStatus.FAILED:
                continue
            details = stage_result.details
            subject = details.get("repository") or details.get("image")
            platforms = getattr(stage_result.error, "platforms", None)
            if platforms:
                subject = ", ".join(platforms)
            entries.append(
                {
                    "stage": stage_result.stage.value,
                    "subject": subject,
                    "error": _error_name(stage_result.error)
                    or stage_result.status.value,
                    "message": str(stage_result.error)
                    if stage_result.error
                    else stage_result.details.get("reason", ""),
                }
            )
        return entries

    def to_dict(self) -> Dict[str, Any]:
        def stage_dict(result: Optional[StageResult]) -> Optional[Dict[str, Any]]:
            if result is None:
                return None
            return {
                "status": result.status.value,
                "error": _error_name(result.error),
                "details": result.details,
            }

        return {
            "success": self.success,
            "targets": [
                {
                    "target": r.target.label,
                    "status": r.status.value,
                    "stage": r.stage.value,
                    "platform": r.platform,
                    "binaries": [p.name for p in r.binaries],
                    "error": _error_name(r.error),
                }
                for r in self.targets
            ],
            "provision": stage_dict(self.provision),
            "publish": stage_dict(self.publish),
            "failures": self.failures(),
        }
