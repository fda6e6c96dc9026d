"""
Structured logging for Elite Speaks.

The API server configures logging once at startup from its own
``ServerSettings``; modules just call ``structlog.get_logger()``.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor


def _renderer(json_format: bool) -> Processor:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure stdlib logging and structlog.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: One JSON object per line when True, otherwise a
            human-readable console format
    """
    numeric_level = getattr(logging, level.upper())

    # uvicorn and httpx log through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors.append(structlog.processors.format_exc_info)
    processors.append(_renderer(json_format))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
