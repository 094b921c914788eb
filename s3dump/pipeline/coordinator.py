# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Pipeline Coordinator - Runs source -> transform -> sink as one unit.

Each stage runs in its own task; adjacent stages are joined by a bounded
ByteChannel so a slow consumer suspends the producer. The coordinator:

1. Starts every stage and marks it running
2. Waits for the terminal (last) stage to finish, the first stage
   failure, or the timeout, whichever comes first
3. On failure or timeout: cancels every other stage, asks each stage to
   abort (kill processes, abort uploads) and raises the first error
4. On success: stops any stage still running upstream (the sink may
   legitimately finish early) and marks it completed
"""

import asyncio
from typing import Dict, List, Protocol, Sequence

import structlog

from s3dump.exceptions import PipelineTimeoutError
from s3dump.models import PipelineRun, StageState
from s3dump.pipeline.channel import ByteChannel

logger = structlog.get_logger()


class Stage(Protocol):
    """A pipeline stage. Sources get no inbox, sinks get no outbox."""

    name: str

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        """Move bytes from inbox to outbox; close outbox at end of stream."""
        ...

    async def abort(self) -> None:
        """Release external resources after the run was torn down."""
        ...


class PipelineCoordinator:
    """Executes exactly one pipeline run."""

    def __init__(self, run: PipelineRun, queue_size: int = 8) -> None:
        self.run = run
        self._queue_size = queue_size
        self._error: BaseException | None = None
        self._failed_stage: str | None = None
        self._failure = asyncio.Event()
        self._started = False

    @property
    def error(self) -> BaseException | None:
        return self._error

    async def execute(self, stages: Sequence[Stage], timeout: float | None = None) -> None:
        """
        Run the stages to completion.

        Args:
            stages: Source first, sink last (at least two)
            timeout: Seconds before the whole run is torn down

        Raises:
            The first stage error, or PipelineTimeoutError
        """
        if self._started:
            raise RuntimeError("A PipelineCoordinator executes a single run")
        if len(stages) < 2:
            raise ValueError("A pipeline needs at least a source and a sink")
        self._started = True

        channels = [ByteChannel(self._queue_size) for _ in stages[1:]]
        tasks: Dict[str, asyncio.Task] = {}
        for stage in stages:
            self.run.register(stage.name)

        for index, stage in enumerate(stages):
            inbox = channels[index - 1] if index > 0 else None
            outbox = channels[index] if index < len(channels) else None
            self.run.transition(stage.name, StageState.RUNNING)
            tasks[stage.name] = asyncio.create_task(
                self._run_stage(stage, inbox, outbox),
                name=f"{self.run.run_id}:{stage.name}",
            )

        logger.info(
            "pipeline_started",
            run_id=self.run.run_id,
            direction=self.run.direction.value,
            source=self.run.source,
            sink=self.run.sink,
            stages=[stage.name for stage in stages],
        )

        terminal = tasks[stages[-1].name]
        failure_wait = asyncio.create_task(self._failure.wait())
        try:
            done, _ = await asyncio.wait(
                {terminal, failure_wait},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await self._teardown(stages, tasks)
            raise
        finally:
            failure_wait.cancel()

        if self._error is None and not done:
            self._error = PipelineTimeoutError(
                f"{self.run.direction.value.capitalize()} timed out after {timeout} seconds",
                details={"run_id": self.run.run_id, "timeout": timeout},
            )
            logger.error("pipeline_timeout", run_id=self.run.run_id, timeout=timeout)

        if self._error is not None:
            await self._teardown(stages, tasks)
            raise self._error

        await self._stop_leftovers(tasks)
        logger.info(
            "pipeline_completed",
            run_id=self.run.run_id,
            direction=self.run.direction.value,
        )

    async def _run_stage(
        self,
        stage: Stage,
        inbox: ByteChannel | None,
        outbox: ByteChannel | None,
    ) -> None:
        try:
            await stage.run(inbox, outbox)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(stage.name, e)
            return
        if self.run.stages[stage.name] is StageState.RUNNING:
            self.run.transition(stage.name, StageState.COMPLETED)

    def _fail(self, stage_name: str, error: BaseException) -> None:
        if self._error is not None:
            logger.debug(
                "pipeline_error_discarded",
                run_id=self.run.run_id,
                stage=stage_name,
                error=str(error),
            )
            return
        self._error = error
        self._failed_stage = stage_name
        self.run.transition(stage_name, StageState.FAILED)
        logger.error(
            "pipeline_stage_failed",
            run_id=self.run.run_id,
            stage=stage_name,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._failure.set()

    async def _teardown(self, stages: Sequence[Stage], tasks: Dict[str, asyncio.Task]) -> None:
        """Fail every sibling, cancel its task, then let it release resources."""
        for name, state in self.run.stages.items():
            if state is StageState.RUNNING:
                self.run.transition(name, StageState.FAILED)

        pending: List[asyncio.Task] = [t for t in tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for stage in stages:
            try:
                await stage.abort()
            except Exception as e:
                logger.warning(
                    "pipeline_stage_abort_failed",
                    run_id=self.run.run_id,
                    stage=stage.name,
                    error=str(e),
                )

        logger.info(
            "pipeline_torn_down",
            run_id=self.run.run_id,
            failed_stage=self._failed_stage,
        )

    async def _stop_leftovers(self, tasks: Dict[str, asyncio.Task]) -> None:
        leftovers = {name: t for name, t in tasks.items() if not t.done()}
        for task in leftovers.values():
            task.cancel()
        await asyncio.gather(*leftovers.values(), return_exceptions=True)
        for name in leftovers:
            if self.run.stages[name] is StageState.RUNNING:
                self.run.transition(name, StageState.COMPLETED)
            logger.debug("pipeline_stage_stopped", run_id=self.run.run_id, stage=name)
