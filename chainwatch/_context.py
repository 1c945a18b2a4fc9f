"""The active flow run, propagated via contextvars.

:class:`~chainwatch._recorder.FlowMetricRecorder` binds a :class:`FlowContext`
when a run starts and clears it when the run is sealed. Tracing backends and
the structlog processor read it to tag their output; flows annotate it with
values worth seeing in every later log line, such as the transaction hash.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Any


class FlowContext:
    """Identifies one run of one flow.

    Each flow loop is its own asyncio task and tasks copy the context they
    are created in, so concurrent flows never observe each other's runs.
    """

    __slots__ = ("_values", "flow_name", "run_id")

    def __init__(
        self,
        flow_name: str,
        run_id: str | None = None,
        values: dict[str, Any] | None = None,
    ) -> None:
        self.flow_name = flow_name
        self.run_id: str = run_id or uuid.uuid4().hex
        self._values: dict[str, Any] = dict(values) if values else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def annotate(self, key: str, value: Any) -> None:
        self._values[key] = value

    @property
    def values(self) -> dict[str, Any]:
        """Copy of the annotations made so far."""
        return dict(self._values)

    def __repr__(self) -> str:
        return f"FlowContext(flow_name={self.flow_name!r}, run_id={self.run_id!r})"


_active_run: ContextVar[FlowContext | None] = ContextVar("chainwatch_active_run", default=None)


def bind_run(ctx: FlowContext) -> None:
    _active_run.set(ctx)


def clear_run() -> None:
    _active_run.set(None)


def active_run() -> FlowContext | None:
    """Return the :class:`FlowContext` of the open run, or ``None`` between runs."""
    return _active_run.get()


def current_run_id() -> str | None:
    ctx = _active_run.get()
    return ctx.run_id if ctx is not None else None


def current_flow_name() -> str | None:
    ctx = _active_run.get()
    return ctx.flow_name if ctx is not None else None


def annotate_run(key: str, value: Any) -> None:
    """Attach *value* to the open run. Outside a run this does nothing."""
    ctx = _active_run.get()
    if ctx is not None:
        ctx.annotate(key, value)


def run_value(key: str, default: Any = None) -> Any:
    ctx = _active_run.get()
    return default if ctx is None else ctx.get(key, default)
