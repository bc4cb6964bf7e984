"""Logging configuration for STEPhie entry points.

Usage:
    from stephie.logging_config import configure_logging

    configure_logging(level="DEBUG")
    log = structlog.get_logger()
    log.info("Server starting", port=3335)

Output goes to stderr so the stdio MCP transport keeps stdout to itself.
"""

from __future__ import annotations

import logging
import sys

import structlog

_NOISY_LOGGERS = [
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
    "mcp",
    "fastmcp",
]


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    colors: bool | None = None,
) -> None:
    """Configure structlog for a STEPhie process.

    Call this once at application startup before any logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON output for production/log aggregation
        colors: Enable colors (auto-detect TTY if None)
    """
    if colors is None:
        colors = sys.stderr.isatty()

    _configure_stdlib_logging(level)

    if json_output:
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors, pad_event=30)

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso" if json_output else "%H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors.append(structlog.processors.format_exc_info)
    processors.extend([structlog.processors.UnicodeDecoder(), renderer])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _configure_stdlib_logging(level: str) -> None:
    """Configure stdlib logging and suppress noisy third-party logs."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
