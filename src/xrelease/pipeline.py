"""
Release pipeline orchestration.

Sequences build -> collect -> provision -> publish, isolating per-target
failures and stopping at the first run-wide failure.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from .build.collector import ArtifactCollector
from .build.target_builder import TargetBuilder
from .config import PipelineConfig
from .exceptions import (
    AuthError,
    BuildError,
    CollectError,
    ProvisionError,
    PublishError,
    ReleaseError,
    UnknownArchitecture,
)
from .models import (
    ArchitectureMapping,
    BuildTarget,
    PipelineResult,
    RepositoryHandle,
    Stage,
    StageResult,
    StageStatus,
    StagingTree,
    TargetResult,
)
from .registry.auth import RegistryAuth, registry_host
from .registry.provisioner import RegistryProvisioner
from .registry.publisher import ImagePublisher

log = logging.getLogger(__name__)


def _task_failed(task: asyncio.Task) -> bool:
    return task.exception() is not None or not task.result().succeeded


class PipelineOrchestrator:
    """Run the release stages for a set of build targets."""

    def __init__(
        self,
        config: PipelineConfig,
        builder: Optional[TargetBuilder] = None,
        collector: Optional[ArtifactCollector] = None,
        provisioner: Optional[RegistryProvisioner] = None,
        publisher: Optional[ImagePublisher] = None,
        auth: Optional[RegistryAuth] = None,
    ):
        self.config = config
        self.mapping: ArchitectureMapping = config.mapping
        self.staging_tree = StagingTree(config.staging_root)
        self.builder = builder or TargetBuilder(
            self.mapping,
            workspace=config.workspace,
            target_dir=config.target_dir,
            toolchain=config.toolchain,
            binaries=config.binaries,
        )
        self.collector = collector or ArtifactCollector(self.staging_tree)
        self.provisioner = provisioner or RegistryProvisioner(lock_dir=config.lock_dir)
        self.publisher = publisher or ImagePublisher(dockerfile=config.dockerfile)
        self.auth = auth or RegistryAuth()

    def requested_platforms(self, targets: Sequence[BuildTarget]) -> List[str]:
        if self.config.platforms:
            return sorted(set(self.config.platforms))
        return self.mapping.platforms_for(targets)

    async def _build_and_collect(
        self, target: BuildTarget, semaphore: asyncio.Semaphore
    ) -> TargetResult:
        platform = self.mapping.platform_for(target.architecture)

        async with semaphore:
            try:
                bundle = await self.builder.build(target, self.config.release_flags)
            except BuildError as e:
                return TargetResult(
                    target, StageStatus.FAILED, Stage.BUILD, platform, error=e
                )

        try:
            binaries = await asyncio.to_thread(
                self.collector.collect, bundle, self.mapping
            )
        except (CollectError, UnknownArchitecture) as e:
            log.error(f"Collection failed for {target.label}: {e}")
            return TargetResult(
                target, StageStatus.FAILED, Stage.COLLECT, platform, error=e
            )

        return TargetResult(
            target, StageStatus.SUCCEEDED, Stage.COLLECT, platform, binaries=binaries
        )

    async def build_all(self, targets: Sequence[BuildTarget]) -> List[TargetResult]:
        """
        Build and collect every target with bounded concurrency.

        Each target is collected as soon as its own build finishes. With
        ``fail_fast`` the first failure cancels the remaining targets and
        their toolchain processes are killed.
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        tasks: Dict[asyncio.Task, BuildTarget] = {
            asyncio.create_task(
                self._build_and_collect(target, semaphore), name=target.label
            ): target
            for target in targets
        }

        if not self.config.fail_fast:
            await asyncio.gather(*tasks, return_exceptions=True)
        else:
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                if any(_task_failed(task) for task in done) and pending:
                    log.warning(
                        f"Build failure, cancelling {len(pending)} remaining target(s)"
                    )
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    break

        results = []
        for task, target in tasks.items():
            platform = self.mapping.platform_for(target.architecture)
            if task.cancelled():
                results.append(
                    TargetResult(target, StageStatus.CANCELLED, Stage.BUILD, platform)
                )
            elif task.exception() is not None:
                error = task.exception()
                log.error(
                    f"Unexpected error for {target.label}",
                    exc_info=(type(error), error, error.__traceback__),
                )
                results.append(
                    TargetResult(
                        target, StageStatus.FAILED, Stage.BUILD, platform, error=error
                    )
                )
            else:
                results.append(task.result())
        return results

    def _blocked_publish(
        self, platforms: List[str], failed: List[TargetResult]
    ) -> StageResult:
        details = {
            "platforms": platforms,
            "reason": f"{len(failed)} target(s) did not build",
        }
        try:
            self.publisher.check_staging(self.staging_tree, platforms)
        except PublishError as e:
            return StageResult(Stage.PUBLISH, StageStatus.FAILED, error=e, details=details)
        return StageResult(Stage.PUBLISH, StageStatus.SKIPPED, details=details)

    def _image_repository(self, handle: RepositoryHandle) -> str:
        if handle.uri:
            return handle.uri
        if self.config.registry:
            return f"{self.config.registry}/{handle.name}"
        return handle.name

    async def _login(self, repository: str) -> None:
        if not self.config.login:
            return
        registry = self.config.registry
        if not registry and "/" in repository:
            registry = registry_host(repository)
        if registry:
            await self.auth.login(registry, self.config.region)

    async def run(
        self, targets: Optional[Sequence[BuildTarget]] = None
    ) -> PipelineResult:
        """
        Run the full pipeline.

        Args:
            targets: Ordered build targets (defaults to the configured ones)

        Returns:
            PipelineResult with per-target and per-stage outcomes
        """
        targets = list(targets if targets is not None else self.config.build_targets)
        if not targets:
            return PipelineResult(error=ReleaseError("No build targets configured"))

        try:
            self.mapping.require(targets)
        except UnknownArchitecture as e:
            log.error(str(e))
            return PipelineResult(error=e)

        platforms = self.requested_platforms(targets)
        if self.config.clean_staging:
            self.staging_tree.reset()
        else:
            self.staging_tree.root.mkdir(parents=True, exist_ok=True)

        log.info(
            f"Building {len(targets)} target(s) for {', '.join(platforms)} "
            f"(concurrency {self.config.max_concurrency})"
        )
        result = PipelineResult(targets=await self.build_all(targets))

        failed = [r for r in result.targets if not r.succeeded]
        if failed:
            for r in failed:
                log.error(f"{r.target.label}: {r.status.value} during {r.stage.value}")
            result.provision = StageResult(
                Stage.PROVISION,
                StageStatus.SKIPPED,
                details={"repository": self.config.repository},
            )
            result.publish = self._blocked_publish(platforms, failed)
            return result

        repository = self.config.repository
        try:
            handle = await self.provisioner.ensure_repository(
                repository, self.config.region
            )
        except (ProvisionError, AuthError) as e:
            log.error(f"Provisioning failed: {e}")
            result.provision = StageResult(
                Stage.PROVISION,
                StageStatus.FAILED,
                error=e,
                details={"repository": repository},
            )
            result.publish = StageResult(
                Stage.PUBLISH,
                StageStatus.SKIPPED,
                details={"reason": "repository not ready"},
            )
            return result

        result.provision = StageResult(
            Stage.PROVISION,
            StageStatus.SUCCEEDED,
            details={"repository": repository, "uri": handle.uri},
        )

        image = f"{self._image_repository(handle)}:{self.config.image_tag}"
        try:
            await self._login(image)
            published = await self.publisher.publish(
                self.staging_tree, image, platforms
            )
        except (PublishError, AuthError) as e:
            log.error(f"Publishing {image} failed: {e}")
            result.publish = StageResult(
                Stage.PUBLISH,
                StageStatus.FAILED,
                error=e,
                details={"image": image, "platforms": platforms},
            )
            return result

        result.publish = StageResult(
            Stage.PUBLISH,
            StageStatus.SUCCEEDED,
            details={
                "image": published.image,
                "platforms": published.platforms,
                "platform_images": published.platform_images,
            },
        )
        log.info(f"Release complete: {published.image}")
        return result


async def run_pipeline(
    config: PipelineConfig, targets: Optional[Sequence[BuildTarget]] = None
) -> PipelineResult:
    """Convenience wrapper building a default orchestrator for ``config``."""
    return await PipelineOrchestrator(config).run(targets)
