from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Set

logger = logging.getLogger(__name__)


class PipelineWorkerPool:
    """
    Runs pipeline executions off the request path with bounded concurrency.

    Submitted jobs start immediately as asyncio tasks but wait on a semaphore
    before doing any work, so at most ``max_concurrent`` pipelines execute at
    once. Tasks are tracked until they finish; failures escaping a job are
    logged by the done callback.
    """

    def __init__(self, max_concurrent: int = 4) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task[None]] = set()
        self.max_concurrent = max_concurrent

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, pipeline_id: str, job: Callable[[str], Awaitable[None]]) -> asyncio.Task[None]:
        async def _run() -> None:
            async with self._semaphore:
                await job(pipeline_id)

        task = asyncio.create_task(_run(), name=f"pipeline-{pipeline_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"Pipeline task cancelled: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Pipeline task failed: {task.get_name()}", exc_info=exc)

    async def drain(self) -> None:
        """Wait until every submitted task, including ones they submit, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
