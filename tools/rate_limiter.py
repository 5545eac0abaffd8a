"""Serialized, fixed-spacing task queue for rate-limited third-party APIs.

Every marketplace and Chatbase call is funneled through one shared
RateLimitedQueue, so at most one outbound call is in flight and consecutive
calls are separated by at least `interval` seconds.

Usage:
    queue = RateLimitedQueue(interval=1.0)
    response = await queue.enqueue(lambda: execute(spec))
"""
import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Task = Callable[[], Awaitable[Any]]


class RateLimitedQueue:
    """FIFO of zero-argument coroutine functions drained by a single worker."""

    def __init__(self, interval: float = 1.0) -> None:
        self.interval = interval
        self._pending: Deque[Tuple[Task, asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._pending)

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        """Queue `task` and wait for its result.

        The task's own exception is re-raised to this caller only; the queue
        keeps draining.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending.append((task, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        while self._pending:
            task, future = self._pending.popleft()
            try:
                result = await task()
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            # Spacing applies after failures too
            await asyncio.sleep(self.interval)
        logger.debug("Rate-limited queue drained")
