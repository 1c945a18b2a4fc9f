"""Tracing backends and backend selection."""

from __future__ import annotations

from chainwatch.backends.base import TracingBackend
from chainwatch.backends.logging import LoggingBackend

__all__ = ["LoggingBackend", "TracingBackend", "create_backend"]


def create_backend(kind: TracingBackend | str = "auto") -> TracingBackend:
    """Resolve a tracing backend.

    *kind* can be:
    - A :class:`TracingBackend` instance, returned as is
    - ``"logging"``: the built-in :class:`LoggingBackend`
    - ``"otel"``: :class:`~chainwatch.backends.otel.OTelBackend`
    - ``"auto"``: OTel when installed, logging otherwise
    """
    if isinstance(kind, TracingBackend):
        return kind
    if kind == "logging":
        return LoggingBackend()
    if kind == "otel":
        from chainwatch.backends.otel import OTelBackend

        return OTelBackend()
    if kind == "auto":
        try:
            from chainwatch.backends.otel import OTelBackend

            return OTelBackend()
        except RuntimeError:
            return LoggingBackend()
    raise ValueError(f"Unknown tracing backend: {kind!r}")
