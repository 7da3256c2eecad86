"""Small asyncio wrapper for running short-lived external tools."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

LOGGER = logging.getLogger("neolauncher.process")

# Keep console windows from flashing up for every probe on Windows.
_CREATION_FLAGS = 0x08000000 if sys.platform.startswith("win") else 0


class ProcessTimeoutError(RuntimeError):
    """An external tool did not finish in time."""


@dataclass(frozen=True)
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str

    @property
    def combined(self) -> str:
        return self.stderr + self.stdout


async def run_process(
    args: Sequence[Union[str, Path]],
    *,
    timeout: float,
    cwd: Optional[Path] = None,
) -> ProcessOutput:
    """Run ``args`` and capture both output streams.

    ``OSError`` is raised when the executable cannot be launched and
    ``ProcessTimeoutError`` when it does not finish within ``timeout`` seconds; in the
    latter case the child is killed before returning. A cancelled call also
    kills and reaps the child.
    """

    command = [str(arg) for arg in args]
    LOGGER.debug("Running %s", command)
    kwargs = {"creationflags": _CREATION_FLAGS} if _CREATION_FLAGS else {}
    proc = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
        **kwargs,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill(proc)
        await proc.wait()
        raise ProcessTimeoutError(f"{command[0]} did not finish within {timeout} seconds") from None
    except asyncio.CancelledError:
        _kill(proc)
        await asyncio.shield(proc.wait())
        raise

    return ProcessOutput(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
