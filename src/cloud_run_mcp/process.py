"""Supervision of a single long-running child process."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from loguru import logger as log

STDOUT = "stdout"
STDERR = "stderr"

LineListener = Callable[[str, str], None]

# Longest output line read in one piece; longer lines are delivered in chunks
LINE_LIMIT = 1024 * 1024


class ProcessHandle:
    """Owns exactly one child process started with asyncio.

    Every line the process writes to stdout or stderr is logged and passed
    to ``listener(stream, line)``. ``wait()`` resolves once the process has
    exited and both output streams are drained.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        name: str,
        listener: LineListener | None = None,
    ) -> None:
        self.process = process
        self.name = name
        self.listener = listener
        self._pumps = [
            asyncio.ensure_future(self._pump(process.stdout, STDOUT)),
            asyncio.ensure_future(self._pump(process.stderr, STDERR)),
        ]

    @classmethod
    async def spawn(
        cls,
        argv: Sequence[str],
        name: str | None = None,
        listener: LineListener | None = None,
        limit: int = LINE_LIMIT,
    ) -> ProcessHandle:
        """Start ``argv`` with piped output.

        Raises:
            OSError: If the executable cannot be started
        """
        log.debug(f"Spawning: {' '.join(argv)}")
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=limit,
        )
        log.debug(f"Started {name or argv[0]} (pid {process.pid})")
        return cls(process, name or argv[0], listener)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    async def _pump(self, stream: asyncio.StreamReader | None, kind: str) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                raw = e.partial
            except asyncio.LimitOverrunError as e:
                raw = await stream.read(e.consumed)
            if not raw:
                return
            line = raw.decode(errors="replace").rstrip("\r\n")
            if kind == STDERR:
                log.warning(f"{self.name} stderr: {line}")
            else:
                log.info(f"{self.name} stdout: {line}")
            if self.listener is not None:
                self.listener(kind, line)

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        returncode = await self.process.wait()
        await asyncio.gather(*self._pumps, return_exceptions=True)
        return returncode

    def terminate(self) -> None:
        """Send SIGTERM, ignoring a process that already exited."""
        try:
            self.process.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        """Send SIGKILL, ignoring a process that already exited."""
        try:
            self.process.kill()
        except ProcessLookupError:
            pass


async def run_command(argv: Sequence[str]) -> tuple[int, str]:
    """Run a short-lived command and capture its stdout.

    Returns:
        Tuple of exit code and decoded stdout

    Raises:
        OSError: If the executable cannot be started
    """
    log.debug(f"Executing: {' '.join(argv)}")
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        log.debug(f"{argv[0]} exited with {process.returncode}: {stderr.decode(errors='replace').strip()}")
    return process.returncode, stdout.decode(errors="replace")
