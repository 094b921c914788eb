# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Dump Process - mysqldump as the pipeline source.

The dump's stdout is read in chunks and pushed into the next stage.
End of stream is forwarded only after the process has exited with
code 0, so a sink never commits a dump that failed halfway.
"""

import asyncio
from typing import List, Sequence

import structlog

from s3dump.config import DatabaseConfig
from s3dump.models import TargetDescriptor
from s3dump.pipeline.channel import ByteChannel, require_channel
from s3dump.process.supervisor import ManagedProcess, SpawnFunc, connection_args

logger = structlog.get_logger()


class DumpProcess(ManagedProcess):
    """Source stage producing raw SQL from the dump executable."""

    label = "dump"

    def __init__(
        self,
        database: DatabaseConfig,
        target: TargetDescriptor,
        command: Sequence[str] = ("mysqldump",),
        chunk_size: int = 64 * 1024,
        stderr_tail_bytes: int = 4096,
        kill_grace: float = 5.0,
        spawn: SpawnFunc | None = None,
    ) -> None:
        super().__init__(command, database, stderr_tail_bytes, kill_grace, spawn)
        self.name = "dump"
        self.target = target
        self.chunk_size = chunk_size
        self.bytes_read = 0

    def build_args(self) -> List[str]:
        args = connection_args(self.database)
        args += ["--compress", "--verbose", "--lock-tables=false"]

        if self.target.schemas:
            args += ["--databases", *self.target.schemas]
        elif self.target.database:
            args.append(self.target.database)
        else:
            args.append("--all-databases")
        return args

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        outbox = require_channel(outbox, self.name)
        await self.start(stdin=asyncio.subprocess.DEVNULL)
        stdout = self.process.stdout

        while True:
            chunk = await stdout.read(self.chunk_size)
            if not chunk:
                break
            await outbox.put(chunk)
            self.bytes_read += len(chunk)

        await self.wait_exit()
        logger.info("dump_stream_finished", target=self.target.label, bytes=self.bytes_read)
        await outbox.close()
