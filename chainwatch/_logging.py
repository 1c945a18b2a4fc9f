"""Process-wide logging setup.

Library modules log through stdlib :mod:`logging`; this routes those records
through structlog so they come out as JSON in production and as readable
console lines elsewhere, enriched with the active flow run.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

from chainwatch.contrib.structlog import flow_processor


def setup_logging(environment: str | None = None, level: str | None = None) -> None:
    """Install a structlog-rendering handler on the root logger.

    *environment* ``"production"`` selects JSON output and a default level
    of INFO; anything else selects console output and DEBUG.
    """
    production = environment == "production"
    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
        flow_processor,
    ]
    rendering: list[Any] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if production:
        rendering += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        rendering.append(structlog.dev.ConsoleRenderer())

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(foreign_pre_chain=shared, processors=rendering)
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel((level or ("INFO" if production else "DEBUG")).upper())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Suppress noisy 3rd party loggers
    for noisy in ("httpx", "httpcore", "urllib3", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
