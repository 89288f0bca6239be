"""
Cross-process file locking.

Serializes work between separate xrelease processes on the same host by
holding an OS-level lock on a small lock file:
- Windows: msvcrt.locking()
- Unix/Linux/macOS: fcntl.flock()
"""

import contextlib
import logging
import platform
import time
from pathlib import Path
from typing import Iterator, Optional

log = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"

if _IS_WINDOWS:
    import msvcrt
else:
    import fcntl


class FileLockError(Exception):
    """Raised when a lock file cannot be locked or released."""

    pass


class FileLockTimeout(FileLockError):
    """Raised when a lock is not acquired within the timeout."""

    pass


def _try_lock(handle) -> None:
    if _IS_WINDOWS:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
    else:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock(handle) -> None:
    if _IS_WINDOWS:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextlib.contextmanager
def file_lock(
    path: Path,
    timeout: Optional[float] = 60.0,
    retry_interval: float = 0.1,
) -> Iterator[None]:
    """
    Hold an exclusive lock on ``path`` for the duration of the block.

    The lock file is created if needed and left in place afterwards.
    Blocks the calling thread while waiting, so call it from a worker thread
    when running inside an event loop.

    Args:
        path: Lock file location
        timeout: Maximum seconds to wait (None waits forever)
        retry_interval: Seconds between attempts

    Raises:
        FileLockTimeout: If the lock is still held elsewhere after ``timeout``
        FileLockError: If the lock file cannot be opened
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "a+b")
    except OSError as e:
        raise FileLockError(f"Cannot open lock file {path}: {e}") from e

    start_time = time.monotonic()
    with handle:
        while True:
            try:
                _try_lock(handle)
                break
            except OSError as e:
                if timeout is not None and time.monotonic() - start_time >= timeout:
                    raise FileLockTimeout(
                        f"Could not lock {path} within {timeout} seconds: {e}"
                    ) from e
                time.sleep(retry_interval)

        log.debug(f"Acquired lock {path}")
        try:
            yield
        finally:
            try:
                _unlock(handle)
                log.debug(f"Released lock {path}")
            except OSError as e:
                log.error(f"Error releasing lock {path}: {e}")
