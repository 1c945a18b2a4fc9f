"""Tests for chainwatch._lock.Mutex."""

from __future__ import annotations

import asyncio

import pytest

from chainwatch._errors import LogicError
from chainwatch._lock import Mutex


class TestAcquireRelease:
    def test_free_lock_is_granted_immediately(self) -> None:
        async def main() -> bool:
            mutex = Mutex()
            await mutex.acquire()
            return mutex.is_locked()

        assert asyncio.run(main())

    def test_release_unlocked_raises(self) -> None:
        mutex = Mutex("l2-wallet")
        with pytest.raises(LogicError, match="l2-wallet"):
            mutex.release()

    def test_release_without_waiters_frees(self) -> None:
        async def main() -> bool:
            mutex = Mutex()
            await mutex.acquire()
            mutex.release()
            return mutex.is_locked()

        assert asyncio.run(main()) is False


class TestFairness:
    def test_waiters_granted_in_arrival_order(self) -> None:
        async def main() -> tuple[list[int], int, bool]:
            mutex = Mutex()
            order: list[int] = []
            await mutex.acquire()

            async def waiter(i: int) -> None:
                async with mutex:
                    order.append(i)
                    await asyncio.sleep(0)

            tasks = [asyncio.create_task(waiter(i)) for i in range(5)]
            await asyncio.sleep(0)
            queued = mutex.waiting
            mutex.release()
            await asyncio.gather(*tasks)
            return order, queued, mutex.is_locked()

        order, queued, locked = asyncio.run(main())
        assert order == [0, 1, 2, 3, 4]
        assert queued == 5
        assert locked is False

    def test_handoff_keeps_lock_held(self) -> None:
        async def main() -> bool:
            mutex = Mutex()
            await mutex.acquire()
            task = asyncio.create_task(mutex.acquire())
            await asyncio.sleep(0)
            mutex.release()
            held = mutex.is_locked()
            await task
            mutex.release()
            return held

        assert asyncio.run(main())

    def test_cancelled_waiter_is_skipped(self) -> None:
        async def main() -> tuple[list[str], int, bool]:
            mutex = Mutex()
            order: list[str] = []
            await mutex.acquire()

            async def waiter(name: str) -> None:
                async with mutex:
                    order.append(name)

            first = asyncio.create_task(waiter("first"))
            second = asyncio.create_task(waiter("second"))
            await asyncio.sleep(0)
            first.cancel()
            await asyncio.sleep(0)
            queued = mutex.waiting
            mutex.release()
            await second
            return order, queued, first.cancelled()

        order, queued, cancelled = asyncio.run(main())
        assert order == ["second"]
        assert queued == 1
        assert cancelled


class TestWithLock:
    def test_returns_result(self) -> None:
        async def main() -> tuple[str, bool]:
            mutex = Mutex()

            async def fn() -> str:
                return "done"

            result = await mutex.with_lock(fn)
            return result, mutex.is_locked()

        assert asyncio.run(main()) == ("done", False)

    def test_releases_on_error(self) -> None:
        async def main() -> bool:
            mutex = Mutex()

            async def fn() -> None:
                raise ValueError("boom")

            with pytest.raises(ValueError):
                await mutex.with_lock(fn)
            return mutex.is_locked()

        assert asyncio.run(main()) is False

    def test_serializes_critical_sections(self) -> None:
        async def main() -> int:
            mutex = Mutex()
            inside = 0
            peak = 0

            async def fn() -> None:
                nonlocal inside, peak
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.001)
                inside -= 1

            await asyncio.gather(*(mutex.with_lock(fn) for _ in range(4)))
            return peak

        assert asyncio.run(main()) == 1
