"""Structured logging configuration.

This module configures structlog once per process with a stable JSON format.
Log lines go to stderr so command output on stdout stays parseable.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

from core.constants import DEFAULT_LOG_LEVEL


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    if not structlog.is_configured():
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(_resolve_level()),
            logger_factory=structlog.PrintLoggerFactory(sys.stderr),
            cache_logger_on_first_use=True,
        )
    return structlog.get_logger(name)


def _resolve_level() -> int:
    """Resolve the minimum log level from ``LOGSPLIT_LOG_LEVEL``."""
    level_name = os.getenv("LOGSPLIT_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO
