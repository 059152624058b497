"""
Structured logging setup using structlog.

Modules log through the standard library (`logging.getLogger(__name__)` with
`extra={...}` fields); structlog only renders those records. Output goes to
stderr because stdout carries JSON-lines messages.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from opentelemetry import trace

from dbqueue.config import get_settings

# Chatty libraries kept at WARNING regardless of the configured level
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def add_trace_ids(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach the current span's trace and span ids, if a span is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _renderer(log_format: str, stream: TextIO) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=stream.isatty())


def setup_logging(
    log_level: str | None = None,
    log_format: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Route all stdlib logging through a structlog formatter.

    Args:
        log_level: Level name overriding LOG_LEVEL.
        log_format: "json" or "console", overriding LOG_FORMAT.
        stream: Destination, stderr by default.
    """
    settings = get_settings()
    log_level = log_level or settings.log_level
    log_format = log_format or settings.log_format
    stream = stream or sys.stderr

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            add_trace_ids,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ExtraAdder(),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_format, stream),
        ],
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
