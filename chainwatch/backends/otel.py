"""OpenTelemetry tracing backend.

Needs ``opentelemetry-api`` (the ``otel`` extra). Spans are named after the
step and carry the flow, run and deadline as ``chainwatch.*`` attributes.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from chainwatch._context import current_run_id
from chainwatch.backends.base import TracingBackend

try:
    from opentelemetry import trace  # type: ignore[import-not-found]

    _HAS_OTEL = True
except ImportError:  # pragma: no cover
    _HAS_OTEL = False


class OTelBackend(TracingBackend):
    """Raises :class:`RuntimeError` on construction if OpenTelemetry is not installed."""

    def __init__(
        self,
        tracer_name: str = "chainwatch",
        tracer_provider: Any | None = None,
    ) -> None:
        if not _HAS_OTEL:
            raise RuntimeError(
                "opentelemetry-api is required for OTelBackend. "
                "Install it with: pip install 'chainwatch[otel]'"
            )
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)

    @contextmanager
    def span(self, flow_name: str, step_name: str, timeout_ms: float, **attrs: Any) -> Iterator[None]:
        attributes: dict[str, Any] = {
            "chainwatch.flow": flow_name,
            "chainwatch.timeout_ms": timeout_ms,
            **attrs,
        }
        run_id = current_run_id()
        if run_id is not None:
            attributes["chainwatch.run_id"] = run_id
        with self._tracer.start_as_current_span(step_name, attributes=attributes):
            yield

    def get_correlation_id(self) -> str:
        """Trace ID of the current span, falling back to the run ID."""
        ctx = trace.get_current_span().get_span_context()
        if ctx.trace_id:
            return format(ctx.trace_id, "032x")
        return current_run_id() or ""
