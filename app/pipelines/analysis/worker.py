"""Bounded in-process worker pool for background analysis jobs."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable
from uuid import UUID

from app.telemetry import set_queue_depth

logger = logging.getLogger(__name__)

JobHandler = Callable[[UUID], Awaitable[None]]


class QueueFullError(RuntimeError):
    """Raised when a job is submitted while every queue slot is taken."""


class AnalysisWorkerPool:
    """Fixed number of asyncio tasks draining a bounded queue of media ids.

    Jobs are identified only by media id; all state needed to resume lives on
    the media row, so a lost queue entry can be re-submitted after a restart.
    """

    def __init__(self, worker_count: int = 4, queue_size: int = 100) -> None:
        self._worker_count = worker_count
        self._queue: asyncio.Queue[UUID] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []
        self._handler: JobHandler | None = None

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    def start(self, handler: JobHandler) -> None:
        if self._tasks:
            raise RuntimeError("Worker pool already started")
        self._handler = handler
        self._tasks = [
            asyncio.create_task(self._run(index), name=f"analysis-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.info("Started %d analysis workers", self._worker_count)

    async def submit(self, media_id: UUID) -> None:
        """Enqueue a job without waiting; raises ``QueueFullError`` at capacity."""

        if not self._tasks:
            raise RuntimeError("Worker pool is not running")
        try:
            self._queue.put_nowait(media_id)
        except asyncio.QueueFull:
            raise QueueFullError(
                f"Analysis queue is full ({self._queue.maxsize} jobs waiting)"
            ) from None
        set_queue_depth(self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued job has been handled."""

        await self._queue.join()

    async def stop(self, *, drain: bool = False) -> None:
        if drain:
            await self._queue.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Analysis workers stopped (pending=%d)", self._queue.qsize())

    async def _run(self, index: int) -> None:
        assert self._handler is not None
        while True:
            media_id = await self._queue.get()
            set_queue_depth(self._queue.qsize())
            try:
                await self._handler(media_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker %d crashed handling media_id=%s", index, media_id)
            finally:
                self._queue.task_done()


__all__ = ["AnalysisWorkerPool", "JobHandler", "QueueFullError"]
