"""structlog processor that tags log entries with the open flow run.

Usage::

    import structlog
    from chainwatch.contrib.structlog import flow_processor

    structlog.configure(
        processors=[
            flow_processor,
            structlog.dev.ConsoleRenderer(),
        ]
    )

:func:`chainwatch._logging.setup_logging` installs it for both structlog and
stdlib records.
"""

from __future__ import annotations

from typing import Any

from chainwatch._context import active_run


def flow_processor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add ``flow``, ``flow_id`` and the run's annotations (e.g. ``tx_hash``).

    Between runs the event is left alone. Keys already on the event win.
    """
    ctx = active_run()
    if ctx is None:
        return event_dict
    event_dict.setdefault("flow", ctx.flow_name)
    event_dict["flow_id"] = ctx.run_id
    for key, value in ctx.values.items():
        event_dict.setdefault(key, value)
    return event_dict
