"""
Request Queue

Serializes and rate-limits outbound calls to an upstream API.
One worker per queue instance processes tasks strictly one at a time.
Failed tasks go back to the front of the queue after an exponential
backoff; timed-out tasks are rejected and never re-run.
"""

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional

from agent_recall.config import QueueConfig
from agent_recall.errors import QueueClosedError, UpstreamTimeoutError

logger = logging.getLogger("agent_recall.queue")


@dataclass
class QueuedRequest:
    """A pending task and the future its caller is awaiting."""
    factory: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    attempts: int = 0
    last_error: Optional[BaseException] = None


class RequestQueue:
    """
    Single-worker retrying task queue.

    Callers `await enqueue(factory)` and receive the task's eventual result.
    Transient failures are retried silently; the caller only sees them as
    latency. The worker starts lazily on the first enqueue.
    """

    def __init__(
        self,
        timeout: float = 45.0,
        delay_min: float = 1.5,
        delay_range: float = 2.0,
        backoff_base: float = 1.0,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "default",
    ):
        self.timeout = timeout
        self.delay_min = delay_min
        self.delay_range = delay_range
        self.backoff_base = backoff_base
        self.max_attempts = max_attempts
        self.name = name
        self._sleep = sleep
        self._queue: Deque[QueuedRequest] = deque()
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._current: Optional[QueuedRequest] = None
        self._closed = False

    @classmethod
    def from_config(cls, config: QueueConfig, name: str = "default") -> "RequestQueue":
        return cls(
            timeout=config.timeout_seconds,
            delay_min=config.delay_min_seconds,
            delay_range=config.delay_range_seconds,
            backoff_base=config.backoff_base_seconds,
            max_attempts=config.max_attempts,
            name=name,
        )

    @property
    def pending(self) -> int:
        """Number of tasks waiting to run, excluding the one in flight."""
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._current is not None

    async def enqueue(self, factory: Callable[[], Awaitable[Any]]) -> Any:
        """
        Queue a coroutine factory and wait for its result.

        The factory is called once per attempt, so each retry gets a fresh
        coroutine.

        Raises:
            UpstreamTimeoutError: If an attempt exceeds the timeout
            QueueClosedError: If the queue is closed before the task is attempted
        """
        if self._closed:
            raise QueueClosedError(f"Queue '{self.name}' is closed")

        future = asyncio.get_running_loop().create_future()
        self._queue.append(QueuedRequest(factory=factory, future=future))
        self._ensure_worker()
        self._wakeup.set()
        return await future

    def _ensure_worker(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        """Worker loop."""
        while not self._closed:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            request = self._queue.popleft()
            if request.future.done():
                # Caller gave up while the task was waiting
                continue

            self._current = request
            try:
                await self._attempt(request)
            finally:
                self._current = None

            await self._sleep(self._jitter())

    async def _attempt(self, request: QueuedRequest) -> None:
        try:
            result = await asyncio.wait_for(request.factory(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] Request timed out after {self.timeout}s, not retrying")
            if not request.future.done():
                request.future.set_exception(
                    UpstreamTimeoutError(f"Request timed out after {self.timeout}s")
                )
            return
        except Exception as e:
            request.attempts += 1
            request.last_error = e

            if self.max_attempts is not None and request.attempts >= self.max_attempts:
                logger.error(
                    f"[{self.name}] Request failed after {request.attempts} attempts: {e}"
                )
                if not request.future.done():
                    request.future.set_exception(e)
                return

            self._queue.appendleft(request)
            delay = self.backoff_delay(request.attempts)
            logger.warning(
                f"[{self.name}] Request failed (attempt {request.attempts}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            await self._sleep(delay)
            return

        if not request.future.done():
            request.future.set_result(result)

    def backoff_delay(self, attempts: int) -> float:
        """Delay before the next attempt of a task that has failed `attempts` times."""
        return self.backoff_base * (2 ** attempts)

    def _jitter(self) -> float:
        return self.delay_min + random.random() * self.delay_range

    async def close(self) -> None:
        """
        Stop the worker and fail every caller still waiting.

        A caller whose task already failed gets that error back; one whose
        task never ran gets QueueClosedError.
        """
        self._closed = True
        in_flight = self._current
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        stranded = list(self._queue)
        if in_flight is not None:
            stranded.insert(0, in_flight)
        self._queue.clear()

        for request in stranded:
            if request.future.done():
                continue
            if request.last_error is not None:
                request.future.set_exception(request.last_error)
            else:
                request.future.set_exception(
                    QueueClosedError(f"Queue '{self.name}' closed with the request still pending")
                )

        if stranded:
            logger.info(f"[{self.name}] Closed with {len(stranded)} pending request(s)")
