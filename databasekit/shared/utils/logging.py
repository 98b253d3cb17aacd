"""Structured logging for the database kit.

Library modules log through ``get_logger(__name__)`` and never configure
logging themselves. Applications call ``configure_logging`` once, usually
with the ``log_level``/``log_json`` values of ``DatabaseSettings``.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from databasekit.config import DatabaseSettings

# Event keys that may carry a connection string
URL_KEYS = ("url", "connection_string")


def redact_url(url: str) -> str:
    """Strip user info from a connection string before it is logged."""
    scheme, sep, rest = url.partition("://")
    if not sep:
        return url.split("@")[-1]
    return f"{scheme}://{rest.split('@')[-1]}"


def redact_connection_strings(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """structlog processor removing credentials from URL-valued keys."""
    for key in URL_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = redact_url(value)
    return event_dict


def configure_logging(
    settings: DatabaseSettings | None = None,
    *,
    level: str | None = None,
    json_format: bool | None = None,
    service_name: str = "databasekit",
) -> None:
    """
    Configure structlog for an application embedding the kit.

    Explicit ``level``/``json_format`` arguments win over ``settings``;
    without either, INFO and JSON output are used.

    Args:
        settings: Source of ``log_level`` and ``log_json``
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines if True, colored console output if False
        service_name: Bound as ``service`` on every entry
    """
    if level is None:
        level = settings.log_level if settings is not None else "INFO"
    if json_format is None:
        json_format = settings.log_json if settings is not None else True
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_connection_strings,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


__all__ = [
    "configure_logging",
    "get_logger",
    "redact_connection_strings",
    "redact_url",
]
