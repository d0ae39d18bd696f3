"""
Logging configuration for applications embedding the fusion engine.

Engine modules log through the standard library; this routes those records
and any structlog loggers through one structlog pipeline. The CLI has its own
verbosity-driven setup in ``cli_logging``.
"""
import logging
import sys
from typing import Any, Iterable, Optional

import structlog

from evidence_fusion.config.settings import settings


def configure_logging(
    level: Optional[str] = None,
    quiet_loggers: Optional[Iterable[str]] = None,
    json_output: Optional[bool] = None,
) -> None:
    """
    Configure structured logging for the application.

    Unset arguments fall back to ``settings.logging`` (``LOGGING_*`` env vars).

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        quiet_loggers: Logger names held at WARNING regardless of ``level``
        json_output: Render JSON lines; defaults to JSON unless stderr is a terminal
    """
    level = (level or settings.logging.LEVEL).upper()
    if quiet_loggers is None:
        quiet_loggers = settings.logging.QUIET_LOGGERS
    if json_output is None:
        json_output = settings.logging.JSON if settings.logging.JSON is not None else not sys.stderr.isatty()

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level))
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> Any:
    """
    Get a structured logger, optionally bound to context such as ``instrument``.
    """
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger
