"""Subprocess capability used by the derivation pipeline.

The pipeline only needs "run this executable with these arguments and this
stdin, give me stdout". Keeping that behind ProcessRunner lets the tests
inject canned compiler output without spawning real toolchains.
"""

from __future__ import annotations

import asyncio
import logging
from asyncio.subprocess import PIPE
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from inosense.util.process_tree import kill_process_tree


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a finished process."""

    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner(Protocol):
    """Runs an external process and captures its output.

    Implementations raise OSError when the process cannot be spawned and
    TimeoutError when it does not finish within timeout seconds.
    """

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        stdin_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult: ...


class AsyncioProcessRunner:
    """ProcessRunner backed by asyncio subprocesses."""

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        stdin_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        logger.debug(f"Running: {executable} {' '.join(args)}")
        proc = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=PIPE if stdin_text is not None else asyncio.subprocess.DEVNULL,
            stdout=PIPE,
            stderr=PIPE,
        )
        stdin_bytes = stdin_text.encode("utf-8") if stdin_text is not None else None

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin_bytes), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"{executable} did not finish within {timeout}s, killing process tree"
            )
            await asyncio.to_thread(kill_process_tree, proc.pid)
            await proc.wait()
            raise TimeoutError(f"{executable} timed out after {timeout}s")

        returncode = proc.returncode if proc.returncode is not None else -1
        return ProcessResult(
            returncode=returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
