"""Bounded retry loop around single flow attempts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from chainwatch._types import FlowStatus, RetryBudget

logger = logging.getLogger("chainwatch.retry")

Sleep = Callable[[float], Awaitable[None]]


async def run_with_retries(
    attempt: Callable[[], Awaitable[FlowStatus]],
    budget: RetryBudget,
    *,
    flow_name: str,
    sleep: Sleep = asyncio.sleep,
) -> FlowStatus:
    """Call *attempt* until it reports OK or the budget is used up.

    SKIP ends the loop straight away: admission control is a policy
    decision, not a transient fault, so it is neither retried nor counted.
    Exhausting the budget is not an error; the status gauge already holds
    the last FAIL. Exceptions raised by *attempt* propagate untouched.
    """
    status = FlowStatus.FAIL
    for number in range(1, budget.limit + 1):
        status = await attempt()
        if status is FlowStatus.OK:
            logger.info(
                "retry.succeeded",
                extra={"flow": flow_name, "attempt": number, "limit": budget.limit},
            )
            return status
        if status is FlowStatus.SKIP:
            logger.info("retry.skipped", extra={"flow": flow_name, "attempt": number})
            return status
        if number == budget.limit:
            logger.warning(
                "retry.exhausted",
                extra={"flow": flow_name, "attempt": number, "limit": budget.limit},
            )
            break
        logger.warning(
            "retry.failed",
            extra={
                "flow": flow_name,
                "attempt": number,
                "limit": budget.limit,
                "retry_in_ms": budget.interval_ms,
            },
        )
        await sleep(budget.interval_ms / 1000)
    return status
