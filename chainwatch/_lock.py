"""FIFO mutex guarding a signing wallet shared by several flows."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from types import TracebackType

from chainwatch._errors import LogicError
from chainwatch._types import R


class Mutex:
    """Binary lock that grants waiters strictly in arrival order.

    Two flows sending from the same account would otherwise race on nonce
    assignment. On :meth:`release` the lock is handed directly to the next
    waiter, so it never appears free while someone is queued.
    """

    def __init__(self, name: str = "wallet") -> None:
        self.name = name
        self._locked = False
        self._waiters: deque[asyncio.Future[None]] = deque()

    async def acquire(self) -> None:
        """Suspend until the lock is granted to the caller."""
        if not self._locked:
            self._locked = True
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ownership was handed over just before cancellation; pass it on.
                self.release()
            else:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        """Hand the lock to the next waiter, or free it."""
        if not self._locked:
            raise LogicError(f"Cannot release unlocked mutex '{self.name}'")
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._locked = False

    def is_locked(self) -> bool:
        return self._locked

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def with_lock(self, fn: Callable[[], Awaitable[R]]) -> R:
        """Run *fn* while holding the lock, releasing it on every exit path."""
        await self.acquire()
        try:
            return await fn()
        finally:
            self.release()

    async def __aenter__(self) -> Mutex:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
