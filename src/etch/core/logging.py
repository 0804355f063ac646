# src/etch/core/logging.py
"""Structured logging setup.

The process is configured once at startup. Individual requests get their
own bound logger so that a node asking for debug output gets DEBUG-level
events without raising the level for every other request in flight.
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Configure structlog for the whole process.

    Args:
        level: Minimum level for ordinary loggers
        json_output: Render JSON lines instead of console output
    """
    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Get a logger bound to ``initial_values``."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger


def request_logger(fqdn: str, *, debug: bool = False) -> Any:
    """Get a logger for one node request.

    With ``debug`` the logger emits DEBUG events regardless of the process
    level; otherwise it uses the process configuration unchanged.
    """
    if not debug:
        return get_logger("etch.request", fqdn=fqdn)
    return structlog.wrap_logger(
        None,
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        fqdn=fqdn,
    )
