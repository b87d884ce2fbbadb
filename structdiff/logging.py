"""Structured logging setup for structdiff.

The library itself only ever calls ``structlog.get_logger()`` and emits
dotted events (``diff.done``, ``patch.entry_failed``, ...).  Applications
that want those events rendered call ``configure_logging`` once.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def configure_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    stream: Any = None,
) -> None:
    """Configure structlog over stdlib logging.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ``WARNING``, ``ERROR``)
        json_format: Render one JSON object per line instead of console text
        stream: Output stream, stderr by default
    """
    default_level = _LEVEL_MAP.get(level.upper(), logging.INFO)
    stream = stream or sys.stderr

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(default_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    if json_format:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=hasattr(stream, "isatty") and stream.isatty(),
            pad_event_to=0,
            pad_level=False,
        )

    handler = logging.StreamHandler(stream)
    handler.setLevel(default_level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(default_level)
    root_logger.addHandler(handler)


def get_logger(name: str | None = None) -> Any:
    """A lazy logger; it picks up whatever configuration is current at call time.

    ``name`` goes to the logger factory, so under ``configure_logging`` it
    becomes the stdlib logger name and the ``logger`` key of each event.
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
