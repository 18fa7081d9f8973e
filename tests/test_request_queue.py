"""
Unit Tests for RequestQueue

Sleeps are recorded instead of awaited so backoff and jitter can be
asserted without real delays.
"""

import asyncio

import pytest

from agent_recall.config import QueueConfig
from agent_recall.errors import QueueClosedError, UpstreamTimeoutError, UpstreamTransientError
from agent_recall.request_queue import RequestQueue


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


class TestRequestQueue:
    """Tests for RequestQueue."""

    @pytest.fixture
    def sleep(self):
        return RecordingSleep()

    @pytest.fixture
    def queue(self, sleep):
        return RequestQueue(timeout=1.0, delay_min=0, delay_range=0, sleep=sleep)

    @pytest.mark.asyncio
    async def test_returns_task_result(self, queue):
        async def task():
            return "ok"

        assert await queue.enqueue(task) == "ok"
        await queue.close()

    @pytest.mark.asyncio
    async def test_runs_tasks_one_at_a_time_in_order(self, queue):
        running = []
        order = []

        def make(n):
            async def task():
                running.append(n)
                assert len(running) == 1
                await asyncio.sleep(0)
                order.append(n)
                running.remove(n)
                return n
            return task

        results = await asyncio.gather(*(queue.enqueue(make(i)) for i in range(5)))

        assert results == [0, 1, 2, 3, 4]
        assert order == [0, 1, 2, 3, 4]
        await queue.close()

    @pytest.mark.asyncio
    async def test_timeout_rejects_and_never_reruns(self, sleep):
        queue = RequestQueue(timeout=0.05, delay_min=0, delay_range=0, sleep=sleep)
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            await asyncio.sleep(1)

        with pytest.raises(UpstreamTimeoutError):
            await queue.enqueue(slow)

        # give the worker a chance to pick up anything it might have requeued
        for _ in range(5):
            await asyncio.sleep(0)

        assert calls == 1
        assert queue.pending == 0
        await queue.close()

    @pytest.mark.asyncio
    async def test_rate_limited_task_retried_until_success(self, queue, sleep):
        """A task failing with 429 three times then succeeding resolves with the success."""
        attempts = 0

        async def flaky():
            nonlocal attempts
            attempts += 1
            if attempts <= 3:
                raise UpstreamTransientError("rate limited", code=429)
            return "done"

        assert await queue.enqueue(flaky) == "done"
        assert attempts == 4

        backoffs = [d for d in sleep.delays if d > 0]
        assert backoffs == [2.0, 4.0, 8.0]
        assert backoffs == sorted(backoffs)
        await queue.close()

    def test_backoff_delay_is_non_decreasing(self, queue):
        delays = [queue.backoff_delay(n) for n in range(1, 10)]
        assert delays == sorted(delays)
        assert delays[0] > 0

    @pytest.mark.asyncio
    async def test_jitter_applied_after_each_task(self, sleep):
        queue = RequestQueue(delay_min=1.5, delay_range=2.0, sleep=sleep)

        async def task():
            return 1

        await queue.enqueue(task)
        await queue.enqueue(task)
        for _ in range(3):
            await asyncio.sleep(0)

        assert len(sleep.delays) >= 2
        assert all(1.5 <= d <= 3.5 for d in sleep.delays)
        await queue.close()

    @pytest.mark.asyncio
    async def test_max_attempts_surfaces_last_error(self, sleep):
        queue = RequestQueue(delay_min=0, delay_range=0, max_attempts=2, sleep=sleep)

        async def failing():
            raise UpstreamTransientError("still failing", code=503)

        with pytest.raises(UpstreamTransientError, match="still failing"):
            await queue.enqueue(failing)
        await queue.close()

    @pytest.mark.asyncio
    async def test_close_fails_pending_callers(self, queue):
        error = UpstreamTransientError("rate limited", code=429)

        async def always_failing():
            raise error

        caller = asyncio.create_task(queue.enqueue(always_failing))
        for _ in range(10):
            await asyncio.sleep(0)

        await queue.close()

        with pytest.raises(UpstreamTransientError) as exc_info:
            await caller
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_close_fails_unattempted_callers_with_queue_closed(self, queue):
        release = asyncio.Event()

        async def blocking():
            await release.wait()

        async def task():
            return "never runs"

        in_flight = asyncio.create_task(queue.enqueue(blocking))
        waiting = asyncio.create_task(queue.enqueue(task))
        for _ in range(10):
            await asyncio.sleep(0)

        await queue.close()

        for caller in (in_flight, waiting):
            with pytest.raises(QueueClosedError):
                await caller

    @pytest.mark.asyncio
    async def test_enqueue_after_close_fails(self, queue):
        await queue.close()

        async def task():
            return 1

        with pytest.raises(QueueClosedError):
            await queue.enqueue(task)

    def test_from_config(self):
        queue = RequestQueue.from_config(QueueConfig(), name="twitter")

        assert queue.timeout == 45
        assert queue.delay_min == 1.5
        assert queue.delay_range == 2.0
        assert queue.name == "twitter"
