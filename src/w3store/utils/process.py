"""
External command execution.

Runs helper binaries (``ipfs-car``, ``livepeer-w3``) with a deadline.
The child is killed when the deadline expires or the awaiting task is
cancelled, so no process outlives the call.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Mapping, Optional, Sequence

from w3store.errors.storage import StoreTimeoutError
from w3store.utils.logging import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Exit status and combined stdout/stderr of a finished command."""

    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def run_command(
    args: Sequence[str],
    *,
    timeout_ms: int,
    env: Optional[Mapping[str, str]] = None,
    operation: Optional[str] = None,
) -> CommandResult:
    """
    Run a command and capture its combined output.

    Args:
        args: Executable and arguments
        timeout_ms: Deadline in milliseconds
        env: Full environment for the child (inherits ours when None)
        operation: Label used in errors and logs

    Returns:
        CommandResult with exit code and output

    Raises:
        StoreTimeoutError: If the deadline expires (the child is killed)
        FileNotFoundError: If the executable does not exist
    """
    label = operation or args[0]
    _logger.debug("Running command", extra={"operation": label, "argv": list(args[:4])})

    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        env=dict(env) if env is not None else None,
    )
    try:
        stdout, _ = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        await _terminate(process)
        _logger.warning(
            "Command timed out, killed",
            extra={"operation": label, "timeout_ms": timeout_ms},
        )
        raise StoreTimeoutError(timeout_ms, operation=label) from None
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    output = (stdout or b"").decode("utf-8", errors="replace")
    return CommandResult(returncode=process.returncode or 0, output=output)


@contextmanager
def temporary_path(prefix: str, data: Optional[bytes] = None) -> Iterator[str]:
    """
    Create a temporary file and remove it on every exit path.

    Args:
        prefix: File name prefix
        data: Optional content written before yielding

    Yields:
        Path of the temporary file
    """
    fd, path = tempfile.mkstemp(prefix=prefix)
    try:
        with os.fdopen(fd, "wb") as f:
            if data is not None:
                f.write(data)
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
