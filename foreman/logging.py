"""Structured logging configuration (structlog).

Entry points (the CLI, an embedding transport) call configure_logging() once
before creating any loggers. Library code only ever does
``structlog.get_logger(__name__)``.
"""

from __future__ import annotations

import logging

import structlog

# Event keys that can carry whole worker outputs or task prompts.
_BULKY_KEYS = ("output", "task", "fragment", "stderr")
_MAX_DISPLAY_LEN = 200


def _truncate_bulky_fields(
    logger: object, method_name: str, event_dict: dict
) -> dict:
    """structlog processor that shortens worker output and prompts in log lines."""
    for key in _BULKY_KEYS:
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > _MAX_DISPLAY_LEN:
            event_dict[key] = val[:_MAX_DISPLAY_LEN] + f"... [{len(val)} chars]"
    return event_dict


_logging_configured = False


def configure_logging(level: int = logging.INFO, colors: bool = True) -> None:
    """Configure structlog and standard-library logging for Foreman entry points.

    Safe to call more than once — subsequent calls are no-ops.
    """
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _truncate_bulky_fields,
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
