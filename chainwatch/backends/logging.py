"""Tracing through stdlib logging, for deployments without a tracing collector."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from chainwatch._context import current_run_id
from chainwatch.backends.base import TracingBackend

logger = logging.getLogger("chainwatch.trace")


class LoggingBackend(TracingBackend):
    """Logs ``step.start`` and ``step.end`` at DEBUG.

    ``step.end`` carries ``duration_ms`` and ``outcome`` (``"ok"`` or
    ``"error"``; a timed-out step ends in ``"error"``).
    """

    @contextmanager
    def span(self, flow_name: str, step_name: str, timeout_ms: float, **attrs: Any) -> Iterator[None]:
        fields = {
            "flow": flow_name,
            "step": step_name,
            "timeout_ms": timeout_ms,
            "correlation_id": self.get_correlation_id(),
            **attrs,
        }
        logger.debug("step.start", extra=fields)
        started = time.monotonic()
        outcome = "error"
        try:
            yield
            outcome = "ok"
        finally:
            fields["duration_ms"] = (time.monotonic() - started) * 1000
            fields["outcome"] = outcome
            logger.debug("step.end", extra=fields)

    def get_correlation_id(self) -> str:
        return current_run_id() or ""
