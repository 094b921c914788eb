# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Child process supervision shared by the dump and restore adapters.

Covers spawning (with SpawnError classification), collecting a bounded
stderr tail for diagnostics, exit-code checking and termination with
SIGTERM -> SIGKILL escalation.
"""

import asyncio
import contextlib
import os
from typing import Any, Awaitable, Callable, Dict, List, Sequence

import structlog

from s3dump.config import DatabaseConfig
from s3dump.exceptions import ProcessExitError, SpawnError

logger = structlog.get_logger()

SpawnFunc = Callable[..., Awaitable[Any]]


def connection_args(database: DatabaseConfig) -> List[str]:
    """Connection flags understood by both mysqldump and mysql."""
    return ["-h", database.host, "-P", str(database.port), "-u", database.user]


def child_env(database: DatabaseConfig) -> Dict[str, str]:
    """Child environment; the password never appears on the command line."""
    env = dict(os.environ)
    if database.password:
        env["MYSQL_PWD"] = database.password
    return env


class StderrTail:
    """Drains a stderr pipe, keeping only the last ``limit`` bytes."""

    def __init__(self, stream: asyncio.StreamReader | None, limit: int = 4096) -> None:
        self._stream = stream
        self._limit = limit
        self._buffer = bytearray()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._stream is not None and self._task is None:
            self._task = asyncio.create_task(self._drain(self._stream))

    async def _drain(self, stream: asyncio.StreamReader) -> None:
        while True:
            data = await stream.read(4096)
            if not data:
                return
            self._buffer += data
            if len(self._buffer) > self._limit:
                del self._buffer[: len(self._buffer) - self._limit]

    async def finish(self, timeout: float = 1.0) -> str:
        """Wait briefly for stderr to reach EOF and return the tail."""
        if self._task is not None and not self._task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout)
            except TimeoutError:
                self._task.cancel()
        return self.text

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace").strip()


async def terminate_process(process: Any, grace: float = 5.0) -> None:
    """Send SIGTERM, then SIGKILL if the process outlives ``grace`` seconds."""
    if process is None or process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(process.wait(), grace)
    except TimeoutError:
        logger.warning("process_kill_escalated", pid=getattr(process, "pid", None))
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


class ManagedProcess:
    """
    One external executable with supervised stdio.

    Subclasses build the argument vector and decide which pipes they
    need; this class owns spawning, the stderr tail and termination.
    """

    label = "process"

    def __init__(
        self,
        command: Sequence[str],
        database: DatabaseConfig,
        stderr_tail_bytes: int = 4096,
        kill_grace: float = 5.0,
        spawn: SpawnFunc | None = None,
    ) -> None:
        self.command = tuple(command)
        self.database = database
        self.kill_grace = kill_grace
        self._stderr_tail_bytes = stderr_tail_bytes
        self._spawn = spawn or asyncio.create_subprocess_exec
        self.process: Any = None
        self.stderr: StderrTail | None = None

    def build_args(self) -> List[str]:
        raise NotImplementedError

    @property
    def argv(self) -> List[str]:
        return [*self.command, *self.build_args()]

    async def start(
        self,
        stdin: int | None = None,
        stdout: int = asyncio.subprocess.PIPE,
    ) -> Any:
        """Spawn the executable; stderr is always piped to the tail collector."""
        argv = self.argv
        try:
            self.process = await self._spawn(
                *argv,
                stdin=stdin,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
                env=child_env(self.database),
            )
        except OSError as e:
            raise SpawnError(
                f"Failed to start {self.command[0]}: {e}",
                details={"executable": self.command[0]},
            ) from e

        self.stderr = StderrTail(self.process.stderr, self._stderr_tail_bytes)
        self.stderr.start()
        logger.info(
            f"{self.label}_started",
            executable=self.command[0],
            pid=getattr(self.process, "pid", None),
            **self.database.redacted(),
        )
        return self.process

    async def wait_exit(self) -> int:
        """Wait for exit and raise ProcessExitError on a non-zero code."""
        code = await self.process.wait()
        tail = await self.stderr.finish() if self.stderr else ""
        if code != 0:
            logger.error(f"{self.label}_failed", code=code, stderr_tail=tail)
            raise ProcessExitError(
                f"{self.command[0]} exited with code {code}: {tail}",
                code=code,
                stderr_tail=tail,
            )
        logger.info(f"{self.label}_exited", code=code)
        return code

    async def abort(self) -> None:
        """Terminate the process if it is still running."""
        if self.process is not None and self.process.returncode is None:
            logger.warning(f"{self.label}_terminating", pid=getattr(self.process, "pid", None))
            await terminate_process(self.process, self.kill_grace)
        if self.stderr is not None:
            self.stderr.cancel()
