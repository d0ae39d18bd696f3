"""
Logging configuration for the CLI.

Clean output by default: the decision table is the product, log lines are
noise unless the user asks for them with ``-v``.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

# Chatty internals, hidden unless debugging
NOISY_LOGGERS = [
    "evidence_fusion.data.cache.cache_manager",
    "evidence_fusion.data.indicator_cache",
    "evidence_fusion.data.providers.frame_provider",
]

VERBOSITY_LEVELS = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: logging.DEBUG,
}

DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

CONSOLE_FORMATS = {
    0: "%(levelname)s: %(message)s",
    1: "%(levelname)s: %(message)s",
    2: "[%(levelname)s] %(message)s",
}


def configure_cli_logging(verbose: int = 1, log_file: Optional[str] = None):
    """
    Configure logging for CLI with appropriate verbosity.

    Args:
        verbose: Verbosity level (0=silent, 1=normal, 2=detailed, 3=debug)
        log_file: Optional file path to save detailed logs

    Example:
        >>> configure_cli_logging(verbose=2, log_file="fusion.log")
    """
    console_level = VERBOSITY_LEVELS.get(verbose, logging.DEBUG if verbose > 3 else logging.ERROR)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    if verbose >= 3:
        console_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt="%H:%M:%S"))
    else:
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMATS.get(verbose, CONSOLE_FORMATS[0])))
    root_logger.addHandler(console_handler)

    # The file always gets everything
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)

    internal_level = logging.DEBUG if verbose >= 3 else max(console_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(internal_level)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if verbose >= 3:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer(
            key_order=['level', 'event'],
            drop_missing=True
        ))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
