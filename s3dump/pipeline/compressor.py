# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Compressor - Streaming compression stage.

Sits between the dump/restore process and storage:
1. Backup: raw SQL chunks in, gzip (or zstd) chunks out
2. Restore: compressed chunks in, raw SQL chunks out

Only one chunk is held at a time; the bounded channels on both sides
carry backpressure through the stage.
"""

import asyncio
import zlib
from typing import Callable

import structlog
import zstandard as zstd

from s3dump.config import Codec
from s3dump.exceptions import CompressionError
from s3dump.pipeline.channel import ByteChannel, require_channel
from s3dump.progress import ProgressAggregator

logger = structlog.get_logger()

COMPRESS = "compress"
DECOMPRESS = "decompress"

# gzip container (header + trailer) around raw deflate
_GZIP_WBITS = 16 + zlib.MAX_WBITS

# Chunks larger than this are transformed on the default executor
_OFFLOAD_THRESHOLD = 1024 * 1024


class _GzipCompressor:
    def __init__(self, level: int) -> None:
        self._cobj = zlib.compressobj(level, zlib.DEFLATED, _GZIP_WBITS)

    def feed(self, data: bytes) -> bytes:
        return self._cobj.compress(data)

    def finish(self) -> bytes:
        return self._cobj.flush(zlib.Z_FINISH)


class _GzipDecompressor:
    """Decompresses one or more concatenated gzip members."""

    def __init__(self) -> None:
        self._dobj = zlib.decompressobj(_GZIP_WBITS)
        self._in_member = False

    def feed(self, data: bytes) -> bytes:
        out = bytearray()
        while data:
            out += self._dobj.decompress(data)
            if not self._dobj.eof:
                self._in_member = True
                break
            data = self._dobj.unused_data
            self._dobj = zlib.decompressobj(_GZIP_WBITS)
            self._in_member = False
        return bytes(out)

    def finish(self) -> bytes:
        tail = self._dobj.flush()
        if self._in_member and not self._dobj.eof:
            raise CompressionError("Compressed stream ended before the end of a gzip member")
        return tail


class _ZstdCompressor:
    def __init__(self, level: int) -> None:
        self._cobj = zstd.ZstdCompressor(level=level).compressobj()

    def feed(self, data: bytes) -> bytes:
        return self._cobj.compress(data)

    def finish(self) -> bytes:
        return self._cobj.flush()


class _ZstdDecompressor:
    def __init__(self) -> None:
        self._dobj = zstd.ZstdDecompressor().decompressobj()

    def feed(self, data: bytes) -> bytes:
        return self._dobj.decompress(data)

    def finish(self) -> bytes:
        return b""


def open_transformer(mode: str, codec: Codec, level: int = 6):
    """Create a streaming compressor or decompressor for a codec."""
    if mode == COMPRESS:
        return _GzipCompressor(level) if codec is Codec.GZIP else _ZstdCompressor(level)
    if mode == DECOMPRESS:
        return _GzipDecompressor() if codec is Codec.GZIP else _ZstdDecompressor()
    raise ValueError(f"Unknown compression mode: {mode}")


class CompressionStage:
    """
    Pipeline stage applying a codec to every chunk.

    When a progress aggregator is given the stage reports compressed-side
    bytes: produced bytes when compressing (total unknown), consumed bytes
    when decompressing (against ``total``).
    """

    def __init__(
        self,
        mode: str,
        codec: Codec = Codec.GZIP,
        level: int = 6,
        progress: ProgressAggregator | None = None,
        total: int | None = None,
    ) -> None:
        if mode not in (COMPRESS, DECOMPRESS):
            raise ValueError(f"Unknown compression mode: {mode}")
        self.name = mode
        self.mode = mode
        self.codec = codec
        self.level = level
        self._progress = progress
        self._total = total
        self.bytes_in = 0
        self.bytes_out = 0

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        inbox = require_channel(inbox, self.name)
        outbox = require_channel(outbox, self.name)
        transformer = open_transformer(self.mode, self.codec, self.level)

        if self._progress is not None:
            self._progress.start(self._total)

        async for chunk in inbox:
            self.bytes_in += len(chunk)
            data = await self._apply(transformer.feed, chunk)
            if data:
                await outbox.put(data)
                self.bytes_out += len(data)
            self._report()

        tail = await self._apply(lambda _: transformer.finish(), b"")
        if tail:
            await outbox.put(tail)
            self.bytes_out += len(tail)
            self._report()

        logger.debug(
            "compression_stage_finished",
            mode=self.mode,
            codec=self.codec.value,
            bytes_in=self.bytes_in,
            bytes_out=self.bytes_out,
        )
        await outbox.close()

    async def abort(self) -> None:
        """Nothing to release; the transformer is dropped with the task."""

    def _report(self) -> None:
        if self._progress is None:
            return
        if self.mode == COMPRESS:
            self._progress.report(self.bytes_out)
        else:
            self._progress.report(self.bytes_in, self._total)

    async def _apply(self, func: Callable[[bytes], bytes], data: bytes) -> bytes:
        try:
            if len(data) > _OFFLOAD_THRESHOLD:
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(None, func, data)
            return func(data)
        except CompressionError:
            raise
        except (zlib.error, zstd.ZstdError) as e:
            raise CompressionError(
                f"{self.mode.capitalize()} failed: {e}",
                details={"codec": self.codec.value, "bytes_in": self.bytes_in},
            ) from e


def compress_bytes(data: bytes, codec: Codec = Codec.GZIP, level: int = 6) -> bytes:
    """One-shot compression with the stage's streaming transformer."""
    transformer = open_transformer(COMPRESS, codec, level)
    return transformer.feed(data) + transformer.finish()


def decompress_bytes(data: bytes, codec: Codec = Codec.GZIP) -> bytes:
    """One-shot decompression; raises CompressionError on malformed input."""
    transformer = open_transformer(DECOMPRESS, codec)
    try:
        return transformer.feed(data) + transformer.finish()
    except (zlib.error, zstd.ZstdError) as e:
        raise CompressionError(f"Decompress failed: {e}", details={"codec": codec.value}) from e
