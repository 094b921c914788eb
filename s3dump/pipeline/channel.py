# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Bounded byte channel joining two pipeline stages.

The channel holds at most ``maxsize`` chunks. A producer calling put()
on a full channel is suspended until the consumer takes a chunk, which
is the only mechanism bounding pipeline memory.
"""

import asyncio
from typing import AsyncIterator

_EOF = object()


class ByteChannel:
    """Single-producer, single-consumer queue of byte chunks."""

    def __init__(self, maxsize: int = 8) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._finished = False
        self.bytes_transferred = 0

    @property
    def closed(self) -> bool:
        """True once the producer signalled end of stream."""
        return self._closed

    async def put(self, chunk: bytes) -> None:
        """Send a chunk, waiting while the channel is full."""
        if self._closed:
            raise RuntimeError("put() on a closed channel")
        if not chunk:
            return
        await self._queue.put(chunk)
        self.bytes_transferred += len(chunk)

    async def close(self) -> None:
        """Signal end of stream to the consumer."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_EOF)

    async def get(self) -> bytes | None:
        """Receive the next chunk, or None at end of stream."""
        if self._finished:
            return None
        item = await self._queue.get()
        if item is _EOF:
            self._finished = True
            return None
        return item

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.get()
            if chunk is None:
                return
            yield chunk


def require_channel(channel: ByteChannel | None, stage: str) -> ByteChannel:
    """Return ``channel``; stages at either end of a pipeline receive None."""
    if channel is None:
        raise RuntimeError(f"Stage {stage} is missing a channel it needs")
    return channel
