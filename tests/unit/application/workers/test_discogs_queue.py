"""Tests for the bounded-concurrency Discogs job queue."""

import asyncio
import logging
import time

import pytest

from bitrot.application.workers.discogs_queue import DiscogsJobQueue


class TestDiscogsJobQueue:
    """Test FIFO admission and the concurrency bound."""

    def test_rejects_zero_concurrency(self) -> None:
        """Test that at least one slot is required."""
        with pytest.raises(ValueError):
            DiscogsJobQueue(max_concurrency=0)

    async def test_never_more_than_two_in_flight(self) -> None:
        """Test that ten 100ms jobs take at least 0.5s with concurrency 2."""
        queue = DiscogsJobQueue(max_concurrency=2)
        active = 0
        peak = 0

        async def job() -> int:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.1)
            active -= 1
            return 1

        started = time.monotonic()
        results = await asyncio.gather(*(queue.enqueue(job) for _ in range(10)))
        elapsed = time.monotonic() - started

        assert results == [1] * 10
        assert peak == 2
        assert elapsed >= 0.5

    async def test_jobs_start_in_fifo_order(self) -> None:
        """Test that a single slot runs jobs in submission order."""
        queue = DiscogsJobQueue(max_concurrency=1)
        order: list[int] = []

        def make_job(n: int):
            async def job() -> None:
                order.append(n)
                await asyncio.sleep(0)

            return job

        await asyncio.gather(*(queue.enqueue(make_job(n)) for n in range(5)))

        assert order == [0, 1, 2, 3, 4]

    async def test_errors_reach_the_caller_and_free_the_slot(self) -> None:
        """Test that a failing job propagates and the next job still runs."""
        queue = DiscogsJobQueue(max_concurrency=1)

        async def boom() -> None:
            raise RuntimeError("job failed")

        async def ok() -> str:
            return "ok"

        with pytest.raises(RuntimeError, match="job failed"):
            await queue.enqueue(boom)
        assert await queue.enqueue(ok) == "ok"
        assert queue.stats() == {"active": 0, "queued": 0, "max": 1}

    async def test_stats_while_busy(self) -> None:
        """Test the active/queued snapshot."""
        queue = DiscogsJobQueue(max_concurrency=2)
        gate = asyncio.Event()

        async def wait_for_gate() -> None:
            await gate.wait()

        futures = [queue.submit(wait_for_gate) for _ in range(5)]
        await asyncio.sleep(0)

        assert queue.stats() == {"active": 2, "queued": 3, "max": 2}

        gate.set()
        await asyncio.gather(*futures)
        assert await queue.wait_idle(timeout=1)
        assert queue.stats()["active"] == 0

    async def test_submit_logs_failures(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that fire-and-forget failures are logged, not raised."""
        queue = DiscogsJobQueue()

        async def boom() -> None:
            raise RuntimeError("background boom")

        with caplog.at_level(logging.ERROR):
            queue.submit(boom, description="test job")
            assert await queue.wait_idle(timeout=1)
            await asyncio.sleep(0)

        assert "Background test job failed" in caplog.text

    async def test_wait_idle_times_out(self) -> None:
        """Test that wait_idle reports a busy queue."""
        queue = DiscogsJobQueue()
        gate = asyncio.Event()

        async def wait_for_gate() -> None:
            await gate.wait()

        future = queue.submit(wait_for_gate)
        assert not await queue.wait_idle(timeout=0.05)

        gate.set()
        await future
