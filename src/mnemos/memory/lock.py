"""FIFO write lock for the memory cache and its file."""

import asyncio
from collections import deque


class WriteLock:
    """Async mutex granting ownership strictly in arrival order.

    Release hands the lock directly to the oldest waiter, so a newly
    arriving writer can never overtake one that is already queued.
    """

    def __init__(self) -> None:
        self._locked = False
        self._waiters: deque[asyncio.Future[None]] = deque()

    def locked(self) -> bool:
        return self._locked

    @property
    def waiting(self) -> int:
        """Number of writers queued behind the current owner."""
        return sum(1 for fut in self._waiters if not fut.done())

    async def acquire(self) -> None:
        if not self._locked and not self._waiters:
            self._locked = True
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # Ownership was handed over just before cancellation; pass it on
                self.release()
            elif fut in self._waiters:
                self._waiters.remove(fut)
            raise

    def release(self) -> None:
        if not self._locked:
            raise RuntimeError("WriteLock released while not held")

        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                return

        self._locked = False

    async def __aenter__(self) -> "WriteLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
