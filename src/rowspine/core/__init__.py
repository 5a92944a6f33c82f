"""Core infrastructure: errors, logging, settings, dialects and adapters."""

from rowspine.core.connection import ConnectionSettings, resolve_settings
from rowspine.core.dialect import Dialect, get_dialect, register_dialect
from rowspine.core.logging import configure_logging, get_logger
from rowspine.core.settings import DatabaseSettings

__all__ = [
    "ConnectionSettings",
    "DatabaseSettings",
    "Dialect",
    "configure_logging",
    "get_dialect",
    "get_logger",
    "register_dialect",
    "resolve_settings",
]
