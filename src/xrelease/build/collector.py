"""Move built binaries into the platform-keyed staging tree."""

import logging
import shutil
from typing import List

from ..exceptions import CollectError
from ..models import ArchitectureMapping, ArtifactBundle, StagingTree

log = logging.getLogger(__name__)


class ArtifactCollector:
    """Relocate bundle binaries to ``{staging_root}/{platform_tag}/``."""

    def __init__(self, staging_tree: StagingTree):
        self.staging_tree = staging_tree

    def collect(self, bundle: ArtifactBundle, mapping: ArchitectureMapping) -> List:
        """
        Move every binary of ``bundle`` into its platform directory.

        Existing files with the same name are overwritten, so collecting the
        same bundle again leaves the destination matching the latest build.
        A source that is already gone while its destination exists counts as
        collected.

        Returns:
            Destination paths, in bundle order

        Raises:
            UnknownArchitecture: If the bundle's triple has no platform mapping
            CollectError: If a binary is missing or cannot be moved
        """
        platform = mapping.platform_for(bundle.architecture)
        destination_dir = self.staging_tree.platform_dir(platform)

        try:
            destination_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CollectError(
                f"Cannot create staging directory {destination_dir}: {e}"
            ) from e

        moved = []
        for source in bundle.binary_paths:
            destination = destination_dir / source.name
            if not source.exists():
                if destination.is_file():
                    log.debug(f"{source.name} already collected for {platform}")
                    moved.append(destination)
                    continue
                raise CollectError(
                    f"Binary {source} for {bundle.target.label} does not exist"
                )

            try:
                if destination.exists():
                    destination.unlink()
                shutil.move(str(source), str(destination))
            except OSError as e:
                raise CollectError(
                    f"Failed to move {source} to {destination}: {e}"
                ) from e

            moved.append(destination)

        log.info(
            f"Collected {bundle.target.label} into {platform}: "
            f"{', '.join(p.name for p in moved)}"
        )
        return moved
