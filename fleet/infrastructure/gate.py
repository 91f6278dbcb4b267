"""Bounded, FIFO-admission concurrency gate for asyncio tasks."""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, TypeVar

T = TypeVar("T")


class ConcurrencyGate:
    """Runs at most ``limit`` coroutines at once; the rest wait in FIFO order.

    A finished task hands its slot straight to the oldest waiter. A task's
    exception is raised only to whoever awaits that task.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError(f"gate limit must be >= 1 (got {limit})")
        self._limit = limit
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def _acquire(self):
        if self._active < self._limit and not self._waiters:
            self._active += 1
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _release(self):
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Wait for a slot, run ``fn(*args, **kwargs)``, free the slot."""
        await self._acquire()
        try:
            return await fn(*args, **kwargs)
        finally:
            self._release()

    def submit(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> "asyncio.Task[T]":
        """Enqueue ``fn`` and return a task resolving to its result.

        Tasks are admitted in submission order.
        """
        return asyncio.ensure_future(self.run(fn, *args, **kwargs))


def gate(limit: int) -> Callable[..., "asyncio.Task"]:
    """Return an enqueue function bound to a new ConcurrencyGate."""
    return ConcurrencyGate(limit).submit
