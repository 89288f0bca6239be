"""Async subprocess execution for toolchain and docker invocations."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Optional, Sequence, Union

log = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Completed subprocess with captured output."""

    command: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, lines: int = 20) -> str:
        return tail(self.stderr, lines)


CommandRunner = Callable[..., Awaitable[CommandResult]]


def tail(text: str, lines: int = 20) -> str:
    """Return the last ``lines`` non-empty lines of ``text``."""
    kept = [line for line in (text or "").splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


async def run_command(
    command: Sequence[str],
    *,
    cwd: Union[str, Path, None] = None,
    env: Optional[Mapping[str, str]] = None,
    stdin: Optional[str] = None,
) -> CommandResult:
    """
    Execute a subprocess and capture its output.

    The child inherits the current environment with ``env`` layered on top,
    so per-call variables never leak into other invocations. If the awaiting
    task is cancelled the child is killed and reaped before the cancellation
    propagates.

    Raises:
        FileNotFoundError: If the executable does not exist
    """
    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    log.debug(f"Running: {' '.join(command)}")
    process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd) if cwd else None,
        env=process_env,
        stdin=asyncio.subprocess.PIPE if stdin is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await process.communicate(
            stdin.encode() if stdin is not None else None
        )
    except asyncio.CancelledError:
        if process.returncode is None:
            log.debug(f"Killing cancelled process {process.pid}: {command[0]}")
            process.kill()
            await process.wait()
        raise

    return CommandResult(
        command=list(command),
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
