"""Bounded-concurrency priority queue for coroutines.

Callers await `add(fn)`; at most `concurrency` functions run at once. Waiters
are admitted highest priority first, FIFO among equal priorities.
"""

import asyncio
import heapq
import itertools
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class TaskQueue:
    def __init__(self, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._concurrency = concurrency
        self._running = 0
        self._waiters: List[Tuple[int, int, asyncio.Future]] = []
        self._counter = itertools.count()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @concurrency.setter
    def concurrency(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"concurrency must be >= 1, got {value}")
        self._concurrency = value
        self._wake()

    @property
    def running(self) -> int:
        return self._running

    @property
    def pending(self) -> int:
        return sum(1 for _, _, fut in self._waiters if not fut.done())

    async def add(self, fn: Callable[[], Awaitable[T]], priority: Optional[int] = None) -> T:
        """Run `fn()` once a slot is free and return its result."""
        await self._acquire(priority or 0)
        try:
            return await fn()
        finally:
            self._release()

    async def _acquire(self, priority: int) -> None:
        if self._running < self._concurrency and not self.pending:
            self._running += 1
            return

        fut = asyncio.get_running_loop().create_future()
        heapq.heappush(self._waiters, (-priority, next(self._counter), fut))
        try:
            await fut
        except asyncio.CancelledError:
            # a slot granted just before cancellation must be handed back
            if fut.done() and not fut.cancelled():
                self._release()
            raise

    def _release(self) -> None:
        self._running -= 1
        self._wake()

    def _wake(self) -> None:
        while self._waiters and self._running < self._concurrency:
            _, _, fut = heapq.heappop(self._waiters)
            if fut.done():
                continue
            self._running += 1
            fut.set_result(None)
