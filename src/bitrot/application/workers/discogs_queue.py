"""Bounded-concurrency FIFO queue for Discogs matching jobs."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Job = Callable[[], Awaitable[Any]]

QUEUE_DEPTH_LOG_EVERY = 50


class DiscogsJobQueue:
    """In-process job queue with at most ``max_concurrency`` jobs in flight.

    Hey future me - this is NOT a worker pool polling an asyncio.Queue like the
    image worker. Jobs are admitted on demand: enqueue() admits immediately if a
    slot is free, and every finished job admits the next one in FIFO order. No
    idle loops, nothing to start or stop.

    What it deliberately does NOT do:
    - no priorities, no dedup (two enqueues of the same release = two runs)
    - no cancellation and no per-job timeout
    - no persistence (a restart loses queued jobs; ingestion re-triggers them)

    Usage:
        queue = DiscogsJobQueue(max_concurrency=2)
        result = await queue.enqueue(lambda: matcher.match_release(release))
        queue.submit(lambda: matcher.match_release(release))  # fire-and-forget
    """

    def __init__(self, max_concurrency: int = 2) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._max = max_concurrency
        self._pending: deque[tuple[Job, asyncio.Future[Any]]] = deque()
        self._active = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def max_concurrency(self) -> int:
        return self._max

    def stats(self) -> dict[str, int]:
        """Snapshot of the queue for monitoring."""
        return {"active": self._active, "queued": len(self._pending), "max": self._max}

    async def enqueue(self, job: Callable[[], Awaitable[T]]) -> T:
        """Queue a job and wait for its result.

        Raises:
            Whatever the job raised
        """
        return await self._push(job)

    def submit(self, job: Job, description: str = "discogs job") -> asyncio.Future[Any]:
        """Queue a job without waiting. Failures are logged, never raised."""
        future = self._push(job)
        future.add_done_callback(lambda f: self._log_failure(f, description))
        return future

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until nothing is queued or running.

        Returns:
            False if the timeout expired first
        """
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except TimeoutError:
            return False
        return True

    def _push(self, job: Job) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending.append((job, future))
        self._idle.clear()

        depth = len(self._pending)
        if depth % QUEUE_DEPTH_LOG_EVERY == 0:
            logger.warning(
                "Discogs queue is backing up: %d queued, %d active (max %d)",
                depth,
                self._active,
                self._max,
            )

        self._pump()
        return future

    def _pump(self) -> None:
        while self._active < self._max and self._pending:
            job, future = self._pending.popleft()
            self._active += 1
            task = asyncio.create_task(self._run(job, future), name="discogs-job")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, job: Job, future: asyncio.Future[Any]) -> None:
        try:
            result = await job()
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1
            self._pump()
            if self._active == 0 and not self._pending:
                self._idle.set()

    @staticmethod
    def _log_failure(future: asyncio.Future[Any], description: str) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "Background %s failed: %s",
                description,
                error,
                exc_info=(type(error), error, error.__traceback__),
            )


__all__ = ["DiscogsJobQueue"]
