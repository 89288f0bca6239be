"""Pipeline configuration loaded from JSON files and XRELEASE_* environment variables."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import (
    DEFAULT_ARCHITECTURES,
    ArchitectureMapping,
    BuildTarget,
    ReleaseFlags,
    platform_parts,
)

log = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_IMAGE_TAG = "latest"
DEFAULT_STAGING_ROOT = "target_releases"
DEFAULT_TOOLCHAIN = "cross"
DEFAULT_MAX_CONCURRENCY = 2
STDERR_TAIL_LINES = 20

ENV_PREFIX = "XRELEASE_"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class PipelineConfig(BaseModel):
    """Everything a release run needs, validated before any build starts."""

    targets: List[str] = Field(
        default_factory=list,
        description="Build targets as PACKAGE@TRIPLE, in build order",
    )
    architectures: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ARCHITECTURES),
        description="Target triple to container platform tag",
    )
    binaries: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Binaries produced per package (defaults to the package name)",
    )
    workspace: Path = Field(
        Path("."), description="Directory the toolchain is invoked from"
    )
    target_dir: Path = Field(
        Path("target"), description="Toolchain output dir, relative to workspace"
    )
    toolchain: str = Field(DEFAULT_TOOLCHAIN, description="Cross-compilation command")
    strip_debug_info: bool = Field(True, description="Strip debug info from binaries")
    staging_root: Path = Field(
        Path(DEFAULT_STAGING_ROOT), description="Root of the platform staging tree"
    )
    repository: str = Field("", description="Image repository name")
    region: str = Field(DEFAULT_REGION, description="Registry API region")
    registry: Optional[str] = Field(
        None,
        description="Registry host and alias, e.g. public.ecr.aws/abc123",
    )
    image_tag: str = Field(DEFAULT_IMAGE_TAG, description="Shared multi-arch tag")
    platforms: Optional[List[str]] = Field(
        None, description="Platforms to publish (defaults to all target platforms)"
    )
    dockerfile: Optional[Path] = Field(
        None, description="Dockerfile for image builds (defaults to bundled one)"
    )
    max_concurrency: int = Field(
        DEFAULT_MAX_CONCURRENCY, ge=1, description="Parallel toolchain invocations"
    )
    fail_fast: bool = Field(
        False, description="Cancel remaining builds after the first failure"
    )
    clean_staging: bool = Field(
        True, description="Clear the staging tree before collecting"
    )
    login: bool = Field(True, description="Log docker in to the registry first")
    lock_dir: Optional[Path] = Field(
        None, description="Directory for provisioning lock files shared between runs"
    )

    @field_validator("targets")
    @classmethod
    def validate_targets_format(cls, v):
        for value in v:
            BuildTarget.parse(value)
        return v

    @field_validator("architectures")
    @classmethod
    def validate_platform_tags(cls, v):
        for platform in v.values():
            platform_parts(platform)
        return v

    @field_validator("platforms")
    @classmethod
    def validate_platforms(cls, v):
        for platform in v or []:
            platform_parts(platform)
        return v

    @field_validator("registry")
    @classmethod
    def strip_registry(cls, v):
        if isinstance(v, str):
            v = v.strip().rstrip("/") or None
        return v

    @model_validator(mode="after")
    def validate_repository(self) -> "PipelineConfig":
        if self.targets and not self.repository:
            raise ValueError("repository is required when targets are configured")
        return self

    @property
    def build_targets(self) -> List[BuildTarget]:
        return [BuildTarget.parse(value) for value in self.targets]

    @property
    def mapping(self) -> ArchitectureMapping:
        return ArchitectureMapping(self.architectures)

    @property
    def release_flags(self) -> ReleaseFlags:
        return ReleaseFlags(strip_debug_info=self.strip_debug_info)

    @classmethod
    def from_file(
        cls, path: Path, overrides: Optional[Dict[str, Any]] = None
    ) -> "PipelineConfig":
        """Load configuration from a JSON file, then apply environment overrides."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        log.debug(f"Pipeline config loaded from {path}")
        return cls.from_environment(data, overrides)

    @classmethod
    def from_environment(
        cls,
        base: Optional[Dict[str, Any]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "PipelineConfig":
        """
        Create config from environment variables layered over ``base``.

        ``overrides`` (typically CLI options) win over both and are merged
        before validation, so a required field may come from any layer.

        Environment variables:
            XRELEASE_TARGETS: Comma separated PACKAGE@TRIPLE list
            XRELEASE_REPOSITORY: Image repository name
            XRELEASE_REGION: Registry API region (default: us-east-1)
            XRELEASE_REGISTRY: Registry host and alias
            XRELEASE_IMAGE_TAG: Shared image tag (default: latest)
            XRELEASE_STAGING_ROOT: Staging tree root (default: target_releases)
            XRELEASE_TOOLCHAIN: Cross-compilation command (default: cross)
            XRELEASE_MAX_CONCURRENCY: Parallel builds (default: 2)
            XRELEASE_FAIL_FAST: Cancel builds after first failure (true/false)
            XRELEASE_STRIP_DEBUG_INFO: Strip debug info (true/false)

        Returns:
            PipelineConfig instance
        """
        data: Dict[str, Any] = dict(base or {})

        if targets := os.getenv(f"{ENV_PREFIX}TARGETS"):
            data["targets"] = [t.strip() for t in targets.split(",") if t.strip()]

        for field_name in (
            "repository",
            "region",
            "registry",
            "image_tag",
            "staging_root",
            "toolchain",
        ):
            value = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if value:
                data[field_name] = value

        if concurrency := os.getenv(f"{ENV_PREFIX}MAX_CONCURRENCY"):
            data["max_concurrency"] = int(concurrency)

        if os.getenv(f"{ENV_PREFIX}FAIL_FAST") is not None:
            data["fail_fast"] = _env_flag(f"{ENV_PREFIX}FAIL_FAST", "false")

        if os.getenv(f"{ENV_PREFIX}STRIP_DEBUG_INFO") is not None:
            data["strip_debug_info"] = _env_flag(
                f"{ENV_PREFIX}STRIP_DEBUG_INFO", "true"
            )

        data.update(overrides or {})
        return cls(**data)
