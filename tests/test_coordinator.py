# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the pipeline coordinator: backpressure, teardown and timeouts.
"""

import asyncio
from typing import List

import pytest

from s3dump.exceptions import PipelineTimeoutError
from s3dump.models import Direction, PipelineRun, StageState
from s3dump.pipeline.channel import ByteChannel
from s3dump.pipeline.compressor import COMPRESS, DECOMPRESS, CompressionStage
from s3dump.pipeline.coordinator import PipelineCoordinator


class ListSource:
    def __init__(self, chunks: List[bytes], name: str = "source") -> None:
        self.name = name
        self.chunks = chunks
        self.produced = 0
        self.aborted = False

    async def run(self, inbox, outbox: ByteChannel) -> None:
        for chunk in self.chunks:
            await outbox.put(chunk)
            self.produced += 1
        await outbox.close()

    async def abort(self) -> None:
        self.aborted = True


class EndlessSource(ListSource):
    async def run(self, inbox, outbox: ByteChannel) -> None:
        while True:
            await outbox.put(b"x" * 16)
            self.produced += 1


class FailingSource(ListSource):
    def __init__(self, error: Exception, after: int = 0) -> None:
        super().__init__([b"chunk"] * after)
        self.error = error

    async def run(self, inbox, outbox: ByteChannel) -> None:
        for chunk in self.chunks:
            await outbox.put(chunk)
        raise self.error


class CollectSink:
    def __init__(self, name: str = "sink", limit: int | None = None) -> None:
        self.name = name
        self.limit = limit
        self.data = bytearray()
        self.finished = False
        self.aborted = False
        self.gate = asyncio.Event()
        self.gate.set()

    async def run(self, inbox: ByteChannel, outbox) -> None:
        await self.gate.wait()
        count = 0
        async for chunk in inbox:
            self.data += chunk
            count += 1
            if self.limit is not None and count >= self.limit:
                return
        self.finished = True

    async def abort(self) -> None:
        self.aborted = True


class BrokenAbortStage(CollectSink):
    async def abort(self) -> None:
        raise RuntimeError("cleanup exploded")


def _run() -> PipelineRun:
    return PipelineRun(Direction.BACKUP, source="test", sink="test")


# ============================================================================
# Success paths
# ============================================================================


@pytest.mark.asyncio
async def test_bytes_flow_through_all_stages():
    payload = [b"INSERT INTO t VALUES (%d);\n" % i for i in range(2000)]
    sink = CollectSink()
    run = _run()

    await PipelineCoordinator(run, queue_size=2).execute(
        [ListSource(payload), CompressionStage(COMPRESS), CompressionStage(DECOMPRESS), sink]
    )

    assert bytes(sink.data) == b"".join(payload)
    assert sink.finished
    assert all(state is StageState.COMPLETED for state in run.stages.values())
    assert not run.failed


@pytest.mark.asyncio
async def test_backpressure_suspends_producer():
    source = EndlessSource([])
    sink = CollectSink(limit=50)
    sink.gate.clear()

    coordinator = PipelineCoordinator(_run(), queue_size=2)
    task = asyncio.create_task(coordinator.execute([source, sink]))

    await asyncio.sleep(0.05)
    # Two chunks fit in the channel, the third put() is suspended
    assert source.produced == 2

    sink.gate.set()
    await asyncio.wait_for(task, 1)
    assert len(sink.data) == 50 * 16


@pytest.mark.asyncio
async def test_early_sink_completion_stops_upstream():
    source = EndlessSource([])
    sink = CollectSink(limit=3)
    run = _run()

    await asyncio.wait_for(PipelineCoordinator(run).execute([source, sink]), 1)

    assert run.stages["source"] is StageState.COMPLETED
    assert run.stages["sink"] is StageState.COMPLETED
    assert not source.aborted


# ============================================================================
# Failure paths
# ============================================================================


@pytest.mark.asyncio
async def test_first_error_wins_and_siblings_are_aborted():
    source = FailingSource(ValueError("dump exploded"), after=3)
    sink = CollectSink()
    run = _run()

    class Passthrough(BrokenAbortStage):
        async def run(self, inbox, outbox):
            async for chunk in inbox:
                await outbox.put(chunk)
            await outbox.close()

    middle = Passthrough(name="middle")

    with pytest.raises(ValueError, match="dump exploded"):
        await PipelineCoordinator(run).execute([source, middle, sink])

    assert run.stages == {
        "source": StageState.FAILED,
        "middle": StageState.FAILED,
        "sink": StageState.FAILED,
    }
    assert source.aborted
    assert sink.aborted
    assert not sink.finished


@pytest.mark.asyncio
async def test_timeout_tears_down_and_raises_timeout_error():
    source = EndlessSource([])
    sink = CollectSink()
    sink.gate.clear()
    run = PipelineRun(Direction.RESTORE, source="test", sink="test")

    with pytest.raises(PipelineTimeoutError) as exc_info:
        await PipelineCoordinator(run).execute([source, sink], timeout=0.1)

    assert isinstance(exc_info.value, TimeoutError)
    assert "Restore timed out" in str(exc_info.value)
    assert source.aborted and sink.aborted
    assert run.failed


@pytest.mark.asyncio
async def test_coordinator_runs_once():
    coordinator = PipelineCoordinator(_run())
    await coordinator.execute([ListSource([b"a"]), CollectSink()])

    with pytest.raises(RuntimeError):
        await coordinator.execute([ListSource([b"a"]), CollectSink()])


@pytest.mark.asyncio
async def test_pipeline_needs_two_stages():
    with pytest.raises(ValueError):
        await PipelineCoordinator(_run()).execute([ListSource([])])


@pytest.mark.asyncio
async def test_duplicate_stage_names_rejected():
    with pytest.raises(ValueError, match="Duplicate"):
        await PipelineCoordinator(_run()).execute([ListSource([]), CollectSink(name="source")])


# ============================================================================
# Stage state machine
# ============================================================================


def test_stage_transitions_only_move_forward():
    run = _run()
    run.register("dump")
    run.transition("dump", StageState.RUNNING)
    run.transition("dump", StageState.COMPLETED)

    with pytest.raises(ValueError):
        run.transition("dump", StageState.RUNNING)
    with pytest.raises(ValueError):
        run.transition("dump", StageState.FAILED)


def test_run_ids_are_unique():
    assert _run().run_id != _run().run_id


@pytest.mark.asyncio
async def test_channel_rejects_put_after_close():
    channel = ByteChannel()
    await channel.close()
    with pytest.raises(RuntimeError):
        await channel.put(b"late")
    assert await channel.get() is None
    assert await channel.get() is None
