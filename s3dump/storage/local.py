# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Local file stages for backups kept on disk and for staged transfers.
"""

from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

from s3dump.exceptions import TransferError
from s3dump.pipeline.channel import ByteChannel, require_channel

logger = structlog.get_logger()


class LocalFileSink:
    """Sink stage writing the stream to a file; a partial file is removed on abort."""

    def __init__(self, path: Path) -> None:
        self.name = "file_sink"
        self.path = Path(path)
        self.bytes_written = 0
        self._finished = False

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        inbox = require_channel(inbox, self.name)
        try:
            async with aiofiles.open(self.path, "wb") as f:
                async for chunk in inbox:
                    await f.write(chunk)
                    self.bytes_written += len(chunk)
                await f.flush()
        except OSError as e:
            raise TransferError(
                f"Writing {self.path} failed: {e}",
                details={"path": str(self.path), "bytes_written": self.bytes_written},
            ) from e
        self._finished = True
        logger.info("file_written", path=str(self.path), bytes=self.bytes_written)

    async def abort(self) -> None:
        if self._finished:
            return
        try:
            await aiofiles.os.remove(self.path)
            logger.info("partial_file_removed", path=str(self.path))
        except FileNotFoundError:
            pass


class LocalFileSource:
    """Source stage reading a file in chunks."""

    def __init__(self, path: Path, chunk_size: int = 64 * 1024) -> None:
        self.name = "file_source"
        self.path = Path(path)
        self.chunk_size = chunk_size
        self.bytes_read = 0

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        outbox = require_channel(outbox, self.name)
        try:
            async with aiofiles.open(self.path, "rb") as f:
                while True:
                    chunk = await f.read(self.chunk_size)
                    if not chunk:
                        break
                    await outbox.put(chunk)
                    self.bytes_read += len(chunk)
        except OSError as e:
            raise TransferError(
                f"Reading {self.path} failed: {e}",
                details={"path": str(self.path), "bytes_read": self.bytes_read},
            ) from e
        await outbox.close()

    async def abort(self) -> None:
        """Nothing to release; the file is closed with the task."""
