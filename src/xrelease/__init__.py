# Load .env vars from file before everything else
from dotenv import load_dotenv

load_dotenv()

from .logger import setup_logging  # noqa: E402

setup_logging()

from typing import TYPE_CHECKING  # noqa: E402

if TYPE_CHECKING:
    from .config import PipelineConfig
    from .models import (
        ArchitectureMapping,
        ArtifactBundle,
        BuildTarget,
        PipelineResult,
        ReleaseFlags,
        StagingTree,
    )
    from .pipeline import PipelineOrchestrator, run_pipeline


def __getattr__(name):
    """Lazily import core modules only when accessed."""
    if name == "PipelineConfig":
        from .config import PipelineConfig

        return PipelineConfig
    elif name in ("PipelineOrchestrator", "run_pipeline"):
        from . import pipeline

        return getattr(pipeline, name)
    elif name in (
        "ArchitectureMapping",
        "ArtifactBundle",
        "BuildTarget",
        "PipelineResult",
        "ReleaseFlags",
        "StagingTree",
    ):
        from . import models

        return getattr(models, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ArchitectureMapping",
    "ArtifactBundle",
    "BuildTarget",
    "PipelineConfig",
    "PipelineOrchestrator",
    "PipelineResult",
    "ReleaseFlags",
    "StagingTree",
    "run_pipeline",
]
