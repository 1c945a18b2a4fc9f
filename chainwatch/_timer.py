"""Step deadlines.

A step that misses its deadline is *abandoned*, not cancelled: chain
operations cannot be recalled once submitted, so the underlying task keeps
running in the background and whatever it eventually produces is discarded.
Reconciliation rebuilds the truth from chain history on the next cycle
instead of trusting the detached task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from chainwatch._errors import StepTimeout
from chainwatch._types import R

logger = logging.getLogger("chainwatch.timer")

# Strong references to abandoned tasks so they are not garbage collected mid-flight.
_detached: set[asyncio.Future[Any]] = set()


async def with_timeout(work: Awaitable[R], timeout_ms: float, label: str) -> R:
    """Await *work* for at most *timeout_ms* milliseconds.

    Returns the result or re-raises the exception of *work*. Raises
    :class:`StepTimeout` naming *label* when the deadline passes first.
    """
    task = asyncio.ensure_future(work)
    done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    if task in done:
        return task.result()
    _detach(task, label)
    raise StepTimeout(label, timeout_ms)


def _detach(task: asyncio.Future[Any], label: str) -> None:
    _detached.add(task)

    def _discard(fut: asyncio.Future[Any]) -> None:
        _detached.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.debug("timer.late_error", extra={"label": label, "error": repr(exc)})
        else:
            logger.debug("timer.late_result", extra={"label": label})

    task.add_done_callback(_discard)


def detached_count() -> int:
    """Number of abandoned tasks still running."""
    return len(_detached)
