# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Progress - Throttled progress channel for one pipeline run.

Stages call report() with raw byte counts as often as they like. The
aggregator forwards at most one intermediate sample per interval to a
buffer that the caller drains with ``async for sample in agg.samples()``.

Rules:
- The start sample (0 bytes) and the completion sample (100%) are always
  delivered, exactly once each.
- A sample arriving inside the interval is held back and replaced by any
  later one; a timer flushes it when the interval elapses.
- loaded_bytes never decreases; out-of-order reports are dropped.
- A slow consumer never blocks producers: once the buffer is full the
  newest intermediate sample overwrites the previous one.
"""

import asyncio
import time
from collections import deque
from typing import AsyncIterator, Callable, Deque

import structlog

from s3dump.models import ProgressSample

logger = structlog.get_logger()

DEFAULT_INTERVAL = 0.1
DEFAULT_MAX_BUFFERED = 256

# 100 is reserved for the completion sample
_MAX_INTERMEDIATE_PERCENT = 99.9


class ProgressAggregator:
    """Single progress stream for one run."""

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL,
        max_buffered: int = DEFAULT_MAX_BUFFERED,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = interval
        self._max_buffered = max(1, max_buffered)
        self._clock = clock
        self._buffer: Deque[ProgressSample] = deque()
        self._wakeup = asyncio.Event()
        self._last_emit_at: float | None = None
        self._last_loaded = -1
        self._pending: ProgressSample | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._start_sample: ProgressSample | None = None
        self._last_sample: ProgressSample | None = None
        self._completed = False
        self._closed = False

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def last_sample(self) -> ProgressSample | None:
        """Most recently delivered sample."""
        return self._last_sample

    def report(self, loaded: int, total: int | None = None) -> None:
        """Offer a raw sample. Safe to call on every chunk."""
        if self._completed or self._closed:
            return
        if loaded < self._last_loaded:
            logger.debug("progress_sample_dropped", loaded=loaded, last=self._last_loaded)
            return
        if loaded == self._last_loaded:
            return
        self._last_loaded = loaded

        if self._start_sample is None and loaded == 0:
            self._start_sample = self._make_sample(0, total)
            self._emit(self._start_sample)
            return

        sample = self._make_sample(loaded, total)
        now = self._clock()
        if self._last_emit_at is None or now - self._last_emit_at >= self._interval:
            self._cancel_timer()
            self._pending = None
            self._emit(sample)
        else:
            self._pending = sample
            self._schedule_flush(now)

    def start(self, total: int | None = None) -> None:
        """Deliver the 0-byte sample if no bytes were reported yet."""
        if self._start_sample is None and self._last_loaded <= 0:
            self.report(0, total)

    def complete(self, loaded: int | None = None, total: int | None = None) -> None:
        """
        Deliver the 100% sample. Idempotent.

        Any held intermediate sample is superseded and discarded.
        """
        if self._completed or self._closed:
            return
        final = max(loaded if loaded is not None else 0, self._last_loaded, 0)
        self._cancel_timer()
        self._pending = None
        self._completed = True
        self._last_loaded = final
        self._emit(
            ProgressSample(
                loaded_bytes=final,
                total_bytes=total if total is not None else final,
                percentage=100,
            )
        )

    def close(self) -> None:
        """End the stream; consumers stop after draining the buffer."""
        self._cancel_timer()
        self._pending = None
        self._closed = True
        self._wakeup.set()

    async def samples(self) -> AsyncIterator[ProgressSample]:
        """Iterate delivered samples until close()."""
        while True:
            while self._buffer:
                yield self._buffer.popleft()
            if self._closed:
                return
            self._wakeup.clear()
            await self._wakeup.wait()

    def drain(self) -> list[ProgressSample]:
        """Take every buffered sample without waiting."""
        drained = list(self._buffer)
        self._buffer.clear()
        return drained

    def _make_sample(self, loaded: int, total: int | None) -> ProgressSample:
        percentage = None
        if total:
            percentage = min(round(loaded / total * 100, 2), _MAX_INTERMEDIATE_PERCENT)
        elif total == 0:
            total = None
        return ProgressSample(loaded_bytes=loaded, total_bytes=total, percentage=percentage)

    def _emit(self, sample: ProgressSample) -> None:
        self._last_emit_at = self._clock()
        self._last_sample = sample
        if (
            len(self._buffer) >= self._max_buffered
            and self._buffer[-1] is not self._start_sample
            and not sample.is_complete
        ):
            self._buffer[-1] = sample
        else:
            self._buffer.append(sample)
        self._wakeup.set()

    def _schedule_flush(self, now: float) -> None:
        if self._timer is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next report or complete() supersedes the held sample
            return
        since = now - self._last_emit_at if self._last_emit_at is not None else 0.0
        delay = max(0.0, self._interval - since)
        self._timer = loop.call_later(delay, self._flush_pending)

    def _flush_pending(self) -> None:
        self._timer = None
        if self._pending is not None and not self._completed and not self._closed:
            sample, self._pending = self._pending, None
            self._emit(sample)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
