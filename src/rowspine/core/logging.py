"""
Structured logging for rowspine.

rowspine never configures logging behind the caller's back. Applications
call ``configure_logging()`` once at startup if they want rowspine's
structlog processor chain; sessions receive their logger by injection
(``open(url, logger=...)``) and fall back to ``get_logger("rowspine.db")``.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="rowspine")
            ↓
        structlog processor chain:
            1. TimeStamper(fmt="iso")
            2. merge_contextvars
            3. add_log_level / add_logger_name
            4. service metadata
            5. ECS field names (JSON only)
            6. JSONRenderer | ConsoleRenderer

        Session
            logger.debug("statement_executed", sql=..., args=..., elapsed_ms=...)

Examples:
    >>> from rowspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> log = get_logger(__name__)
    >>> log.debug("statement_executed", sql="SELECT 1", elapsed_ms=0.2)

Tags:
    logging, structlog, observability, rowspine
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


def _service_metadata(service: str) -> Processor:
    """Build a processor that stamps every event with the service name."""

    def _add_service_metadata(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("service.name", service)
        return event_dict

    return _add_service_metadata


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "rowspine",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _service_metadata(service),
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Get a structured logger, optionally pre-bound with ``initial_values``."""
    return structlog.get_logger(name, **initial_values)


__all__ = [
    "configure_logging",
    "get_logger",
]
