"""Tests for the serialized, fixed-spacing task queue."""
import asyncio
import time

import pytest

from tools.rate_limiter import RateLimitedQueue


class TestRateLimitedQueue:
    @pytest.mark.asyncio
    async def test_tasks_complete_in_submission_order(self):
        queue = RateLimitedQueue(interval=0)
        order = []

        def make(n):
            async def task():
                order.append(n)
                return n * 10
            return task

        results = await asyncio.gather(*(queue.enqueue(make(n)) for n in range(5)))

        assert order == [0, 1, 2, 3, 4]
        assert results == [0, 10, 20, 30, 40]

    @pytest.mark.asyncio
    async def test_tasks_are_spaced_by_interval(self):
        interval = 0.05
        queue = RateLimitedQueue(interval=interval)
        started = []

        async def task():
            started.append(time.monotonic())

        await asyncio.gather(*(queue.enqueue(task) for _ in range(3)))

        gaps = [b - a for a, b in zip(started, started[1:])]
        assert len(gaps) == 2
        assert all(gap >= interval * 0.9 for gap in gaps)

    @pytest.mark.asyncio
    async def test_only_one_task_in_flight(self):
        queue = RateLimitedQueue(interval=0)
        in_flight = 0
        peak = 0

        async def task():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await asyncio.gather(*(queue.enqueue(task) for _ in range(4)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_failure_only_affects_its_caller(self):
        queue = RateLimitedQueue(interval=0)

        async def ok():
            return "ok"

        async def boom():
            raise RuntimeError("boom")

        results = await asyncio.gather(
            queue.enqueue(ok), queue.enqueue(boom), queue.enqueue(ok),
            return_exceptions=True,
        )

        assert results[0] == "ok"
        assert isinstance(results[1], RuntimeError)
        assert results[2] == "ok"

    @pytest.mark.asyncio
    async def test_worker_restarts_after_draining(self):
        queue = RateLimitedQueue(interval=0)

        async def task():
            return 1

        assert await queue.enqueue(task) == 1
        await asyncio.sleep(0.01)
        assert await queue.enqueue(task) == 1
        assert len(queue) == 0
