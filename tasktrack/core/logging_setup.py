"""
structlog configuration for the API server.

``TT_LOG_FORMAT=json`` (default) emits one JSON object per event for log
shippers; ``console`` renders coloured key/value lines for local runs.
"""

from __future__ import annotations

import logging

import structlog

LOG_FORMATS = ("json", "console")


def _level_number(level: str) -> int:
    try:
        return logging.getLevelNamesMapping()[level.upper()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}") from None


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Install the processor chain and drop events below ``level``."""
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {fmt!r} (expected one of {', '.join(LOG_FORMATS)})")

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if fmt == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
    )
