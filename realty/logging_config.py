"""Structured logging setup.

Configures structlog once per process:
- Log level filtering from settings
- ISO timestamps and log level on every event
- Console renderer for development, JSON renderer for production
"""

import logging
import sys

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_level(level: str) -> int:
    """Map a level name to its numeric value, defaulting to INFO."""
    return _LEVELS.get(level.upper(), logging.INFO)


def configure_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog processors and output.

    Args:
        level: Minimum level name (DEBUG, INFO, ...).
        log_format: "json" for machine-readable output, anything else
            for the human-readable console renderer.
    """
    if log_format.lower() == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolve_level(level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )
