"""Tests for chainwatch._retry."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from chainwatch._retry import run_with_retries
from chainwatch._types import FlowStatus, RetryBudget


def _scripted(*statuses: FlowStatus) -> tuple[Callable[[], Awaitable[FlowStatus]], list[int]]:
    calls: list[int] = []

    async def attempt() -> FlowStatus:
        calls.append(len(calls) + 1)
        return statuses[min(len(calls), len(statuses)) - 1]

    return attempt, calls


def _run(attempt: Callable[[], Awaitable[FlowStatus]], budget: RetryBudget) -> tuple[FlowStatus, list[float]]:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    status = asyncio.run(run_with_retries(attempt, budget, flow_name="test", sleep=fake_sleep))
    return status, sleeps


class TestRunWithRetries:
    def test_ok_first_time(self) -> None:
        attempt, calls = _scripted(FlowStatus.OK)
        status, sleeps = _run(attempt, RetryBudget(limit=5, interval_ms=1000))
        assert status is FlowStatus.OK
        assert len(calls) == 1
        assert sleeps == []

    def test_always_fail_uses_whole_budget(self) -> None:
        attempt, calls = _scripted(FlowStatus.FAIL)
        status, sleeps = _run(attempt, RetryBudget(limit=3, interval_ms=500))
        assert status is FlowStatus.FAIL
        assert len(calls) == 3
        # no pause after the last attempt
        assert sleeps == [0.5, 0.5]

    def test_skip_stops_immediately(self) -> None:
        attempt, calls = _scripted(FlowStatus.SKIP, FlowStatus.OK)
        status, sleeps = _run(attempt, RetryBudget(limit=5, interval_ms=500))
        assert status is FlowStatus.SKIP
        assert len(calls) == 1
        assert sleeps == []

    def test_recovers_after_failures(self) -> None:
        attempt, calls = _scripted(FlowStatus.FAIL, FlowStatus.FAIL, FlowStatus.OK)
        status, sleeps = _run(attempt, RetryBudget(limit=5, interval_ms=2000))
        assert status is FlowStatus.OK
        assert len(calls) == 3
        assert sleeps == [2.0, 2.0]

    def test_exceptions_propagate(self) -> None:
        async def attempt() -> FlowStatus:
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError, match="bug"):
            _run(attempt, RetryBudget(limit=3, interval_ms=0))


class TestRetryBudget:
    def test_limit_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            RetryBudget(limit=0, interval_ms=0)

    def test_interval_must_not_be_negative(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            RetryBudget(limit=1, interval_ms=-1)
