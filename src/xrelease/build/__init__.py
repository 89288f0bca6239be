"""
Build stage components.

    - TargetBuilder: cross-compile one (package, architecture) pair
    - ArtifactCollector: move built binaries into the platform staging tree
"""

from .collector import ArtifactCollector
from .target_builder import TargetBuilder

__all__ = ["ArtifactCollector", "TargetBuilder"]
