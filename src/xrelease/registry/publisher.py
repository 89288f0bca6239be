"""
Multi-architecture image publishing.

Builds and pushes one image per platform from the staging tree, then
assembles the shared tag as a manifest list once every push has succeeded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..exceptions import AuthError, MissingPlatformArtifacts, PublishError
from ..models import StagingTree
from ..utils.process import CommandResult, CommandRunner, run_command

log = logging.getLogger(__name__)

DEFAULT_DOCKERFILE = Path(__file__).parent.parent / "templates" / "multi-platform.Dockerfile"

AUTH_FAILURE_MARKERS = (
    "unauthorized",
    "authentication required",
    "no basic auth credentials",
    "denied:",
    "token has expired",
    "authorization token has expired",
)


def split_image(image: str) -> Tuple[str, str]:
    """Split ``repo[:tag]`` into repository and tag (default ``latest``)."""
    name, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image, "latest"
    return name, tag


def platform_suffix(platform: str) -> str:
    return platform.replace("/", "-")


def is_auth_failure(result: CommandResult) -> bool:
    output = f"{result.stderr}\n{result.stdout}".lower()
    return any(marker in output for marker in AUTH_FAILURE_MARKERS)


@dataclass
class PlatformPush:
    """Result of one platform image push."""

    platform: str
    image: str
    success: bool
    auth_failure: bool = False
    message: Optional[str] = None


@dataclass
class PublishResult:
    """Result of a complete multi-architecture publish."""

    image: str
    platforms: List[str]
    platform_images: Dict[str, str] = field(default_factory=dict)


class ImagePublisher:
    """Build, push and assemble multi-architecture images."""

    def __init__(
        self,
        dockerfile: Optional[Path] = None,
        runner: CommandRunner = run_command,
    ):
        """
        Initialize image publisher.

        Args:
            dockerfile: Dockerfile used for every platform (defaults to the bundled one)
            runner: Async command runner
        """
        self.dockerfile = Path(dockerfile) if dockerfile else DEFAULT_DOCKERFILE
        self.runner = runner

    def check_staging(self, staging_tree: StagingTree, platforms: Iterable[str]) -> None:
        """
        Verify every requested platform has staged binaries.

        Raises:
            MissingPlatformArtifacts: Listing every platform without binaries
        """
        missing = staging_tree.missing(platforms)
        if missing:
            raise MissingPlatformArtifacts(missing)

    async def _push_platform(
        self, staging_tree: StagingTree, platform: str, image: str
    ) -> PlatformPush:
        log.info(f"Building and pushing {image} ({platform})")
        try:
            result = await self.runner(
                [
                    "docker",
                    "buildx",
                    "build",
                    "--platform",
                    platform,
                    "--file",
                    str(self.dockerfile),
                    "--tag",
                    image,
                    "--push",
                    str(staging_tree.root),
                ]
            )
        except FileNotFoundError as e:
            return PlatformPush(platform, image, False, message=f"docker not found: {e}")

        if not result.ok:
            log.error(f"Push failed for {platform}")
            log.error(result.stderr_tail())
            return PlatformPush(
                platform,
                image,
                False,
                auth_failure=is_auth_failure(result),
                message=result.stderr_tail(5),
            )

        log.info(f"Pushed {image}")
        return PlatformPush(platform, image, True)

    async def _finalize(self, image: str, platform_images: Dict[str, str]) -> None:
        platforms = sorted(platform_images)
        sources = [platform_images[p] for p in platforms]
        log.info(f"Assembling manifest {image} from {len(sources)} platform image(s)")
        try:
            result = await self.runner(
                ["docker", "buildx", "imagetools", "create", "--tag", image, *sources]
            )
        except FileNotFoundError as e:
            raise PublishError(f"docker not found: {e}", platforms=platforms) from e

        if not result.ok:
            if is_auth_failure(result):
                raise AuthError(
                    f"Registry rejected credentials while tagging {image}: "
                    f"{result.stderr_tail(5)}",
                    platforms=platforms,
                )
            raise PublishError(
                f"Failed to assemble manifest {image}: {result.stderr_tail(5)}",
                platforms=platforms,
            )

    async def publish(
        self, staging_tree: StagingTree, image: str, platforms: Iterable[str]
    ) -> PublishResult:
        """
        Publish ``image`` for every platform in ``platforms``.

        Per-platform images are pushed under ``<tag>-<os>-<arch>`` and the
        shared tag is only written after all of them succeed, so consumers of
        the tag never see a manifest missing a requested platform.

        Args:
            staging_tree: Collected binaries, used as the docker build context
            image: Full image reference including the shared tag
            platforms: Platform tags to publish

        Returns:
            PublishResult describing the finalized manifest

        Raises:
            MissingPlatformArtifacts: If any platform has no staged binaries
            AuthError: If the registry rejects the login
            PublishError: If any platform push or the manifest assembly fails
        """
        platforms = sorted(set(platforms))
        if not platforms:
            raise PublishError("No platforms requested")
        self.check_staging(staging_tree, platforms)

        repository, tag = split_image(image)
        platform_images = {
            p: f"{repository}:{tag}-{platform_suffix(p)}" for p in platforms
        }

        pushes = await asyncio.gather(
            *(
                self._push_platform(staging_tree, p, platform_images[p])
                for p in platforms
            )
        )

        failed = [push for push in pushes if not push.success]
        if failed:
            failed_platforms = [push.platform for push in failed]
            details = "; ".join(f"{push.platform}: {push.message}" for push in failed)
            if any(push.auth_failure for push in failed):
                raise AuthError(
                    f"Registry rejected credentials for {', '.join(failed_platforms)}: "
                    f"{details}",
                    platforms=failed_platforms,
                )
            raise PublishError(
                f"Push failed for {', '.join(failed_platforms)}, "
                f"{image} was not updated: {details}",
                platforms=failed_platforms,
            )

        await self._finalize(image, platform_images)
        log.info(f"Published {image} for {', '.join(platforms)}")
        return PublishResult(
            image=image, platforms=platforms, platform_images=platform_images
        )
