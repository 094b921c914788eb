# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Restore Process - mysql client as the pipeline sink.

Write failures on the client's stdin fall into two classes:
- Broken pipe: the client closed its input (it may have finished or
  crashed). Writing stops and the exit code decides the outcome.
- Anything else: the client is terminated and PipeError is raised.
"""

import asyncio
from typing import Awaitable, Callable, List, Sequence

import structlog

from s3dump.config import DatabaseConfig
from s3dump.exceptions import PipeError, ProcessExitError
from s3dump.pipeline.channel import ByteChannel, require_channel
from s3dump.process.supervisor import ManagedProcess, SpawnFunc, connection_args

logger = structlog.get_logger()

INIT_COMMAND = "SET SESSION foreign_key_checks=0; SET SESSION unique_checks=0; SET SESSION autocommit=0;"

_BROKEN_PIPE = (BrokenPipeError, ConnectionResetError)


class RestoreProcess(ManagedProcess):
    """Sink stage feeding decompressed SQL to the restore executable."""

    label = "restore"

    def __init__(
        self,
        database: DatabaseConfig,
        target_database: str,
        command: Sequence[str] = ("mysql",),
        disable_integrity_checks: bool = True,
        continue_on_error: bool = False,
        session_reset: Callable[[], Awaitable[None]] | None = None,
        stderr_tail_bytes: int = 4096,
        kill_grace: float = 5.0,
        spawn: SpawnFunc | None = None,
    ) -> None:
        super().__init__(command, database, stderr_tail_bytes, kill_grace, spawn)
        self.name = "restore"
        self.target_database = target_database
        self.disable_integrity_checks = disable_integrity_checks
        self.continue_on_error = continue_on_error
        self._session_reset = session_reset
        self.bytes_written = 0
        self.input_closed_early = False

    def build_args(self) -> List[str]:
        args = connection_args(self.database)
        args += ["--max_allowed_packet=1G", "--net_buffer_length=1000000"]
        if self.continue_on_error:
            args.append("--force")
        if self.disable_integrity_checks:
            args.append(f"--init-command={INIT_COMMAND}")
        args.append(self.target_database)
        return args

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        inbox = require_channel(inbox, self.name)
        await self.start(stdin=asyncio.subprocess.PIPE, stdout=asyncio.subprocess.DEVNULL)
        stdin = self.process.stdin

        async for chunk in inbox:
            try:
                stdin.write(chunk)
                await stdin.drain()
            except _BROKEN_PIPE as e:
                self._input_closed(e)
                break
            except OSError as e:
                await self._fatal_pipe_error(e)
            self.bytes_written += len(chunk)

        if not self.input_closed_early:
            try:
                stdin.close()
                await stdin.wait_closed()
            except _BROKEN_PIPE as e:
                self._input_closed(e)
            except OSError as e:
                await self._fatal_pipe_error(e)
        else:
            stdin.close()

        # Only after the client exited; cancellation skips the reset
        try:
            await self.wait_exit()
        except ProcessExitError:
            await self._reset_session()
            raise
        await self._reset_session()

        logger.info(
            "restore_stream_finished",
            database=self.target_database,
            bytes=self.bytes_written,
            input_closed_early=self.input_closed_early,
        )

    async def _reset_session(self) -> None:
        if self.disable_integrity_checks and self._session_reset is not None:
            await self._session_reset()

    def _input_closed(self, error: BaseException) -> None:
        self.input_closed_early = True
        logger.warning(
            "restore_stdin_closed",
            database=self.target_database,
            bytes_written=self.bytes_written,
            error=str(error),
        )

    async def _fatal_pipe_error(self, error: OSError) -> None:
        logger.error("restore_stdin_failed", database=self.target_database, error=str(error))
        await self.abort()
        raise PipeError(
            f"Writing to {self.command[0]} failed: {error}",
            details={"database": self.target_database, "errno": error.errno},
        ) from error
