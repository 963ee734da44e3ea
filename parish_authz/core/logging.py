"""
Logging configuration.

Configures stdlib logging and structlog together so that both
``logging.getLogger(__name__)`` and ``structlog.get_logger()`` end up in the
same handler, rendered as JSON (production) or console text (development).
The request id bound by ``RequestIdMiddleware`` is merged into every event
through structlog's contextvars.

Usage:
    from parish_authz.core.logging import configure_logging
    configure_logging()

    logger = structlog.get_logger()
    logger.info("role_assigned", user_id=str(user_id), role=role.code)
"""

import logging
import sys
from typing import Any

import structlog

from parish_authz.core.config import settings


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure stdlib logging and structlog."""
    level = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        # ExtraAdder picks up ``extra={...}`` from stdlib loggers
        foreign_pre_chain=[*shared_processors, structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # SQL echo is controlled by DB_ECHO, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
