"""Logging configuration.

Routes structlog through the standard library so uvicorn, SQLAlchemy
and application logs share one stream. Request-scoped values bound with
``structlog.contextvars`` (the request ID) are merged into every entry.
"""

import logging
import sys

import structlog

from festival.infrastructure.config import settings


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure stdlib logging and structlog processors.

    Args:
        level: Log level name; defaults to ``settings.log_level``.
        json_logs: Render JSON lines instead of console output; defaults
            to ``settings.log_json``.
    """
    level_name = (level or settings.log_level).upper()
    render_json = settings.log_json if json_logs is None else json_logs

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
        stream=sys.stderr,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if render_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
