"""Error taxonomy for the release pipeline."""

from typing import Iterable, Optional


class ReleaseError(Exception):
    """Base exception for release pipeline errors."""

    pass


class UnknownArchitecture(ReleaseError):
    """Raised when a target triple has no platform tag in the architecture mapping.

    This is a configuration error and is never retried.
    """

    def __init__(self, architecture: str):
        self.architecture = architecture
        super().__init__(
            f"Architecture '{architecture}' has no platform mapping configured"
        )


class BuildError(ReleaseError):
    """Raised when the cross-compilation toolchain fails for one target."""

    def __init__(self, target, exit_code: int, stderr_tail: str = ""):
        self.target = target
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        message = f"Build of {target.label} failed with exit code {exit_code}"
        if stderr_tail:
            message = f"{message}: {stderr_tail}"
        super().__init__(message)


class CollectError(ReleaseError):
    """Raised when built binaries cannot be moved into the staging tree."""

    pass


class ProvisionError(ReleaseError):
    """Raised when the image repository cannot be ensured.

    Covers permission, quota and network failures. A concurrent creation by
    another actor is not an error.
    """

    def __init__(self, repository: str, message: str, code: Optional[str] = None):
        self.repository = repository
        self.code = code
        super().__init__(message)


class PublishError(ReleaseError):
    """Raised when one or more platform pushes fail.

    The shared tag is never updated when this is raised.
    """

    def __init__(self, message: str, platforms: Iterable[str] = ()):
        self.platforms = sorted(platforms)
        super().__init__(message)


class MissingPlatformArtifacts(PublishError):
    """Raised when a requested platform has no binaries in the staging tree."""

    def __init__(self, platforms: Iterable[str]):
        platforms = sorted(platforms)
        super().__init__(
            f"No staged binaries for platform(s): {', '.join(platforms)}",
            platforms=platforms,
        )


class AuthError(ReleaseError):
    """Raised when registry credentials are missing, expired or rejected.

    Operators should refresh credentials rather than retry the build.
    """

    def __init__(self, message: str, platforms: Iterable[str] = ()):
        self.platforms = sorted(platforms)
        super().__init__(message)
