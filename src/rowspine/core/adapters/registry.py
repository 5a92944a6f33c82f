"""Database adapter registry and factory.

Manifesto:
    The session never hard-codes adapter class names.  The registry maps
    backend names to adapter classes and ``get_adapter()`` builds an
    unconnected instance from a :class:`ConnectionSettings` value.

Features:
    - ``AdapterRegistry`` singleton with pre-registered defaults
    - ``register()`` for custom / third-party adapters
    - ``get_adapter()`` factory: settings → adapter

Tags:
    rowspine, database, registry, factory, singleton
"""

from __future__ import annotations

from typing import Any

from rowspine.core.connection import ConnectionSettings
from rowspine.core.errors import ConfigError

from .base import DatabaseAdapter
from .postgresql import PostgreSQLAdapter
from .sqlalchemy import SQLAlchemyAdapter
from .sqlite import SQLiteAdapter


class AdapterRegistry:
    """
    Registry for database adapter factories.

    Pre-registered adapters:
    - ``sqlite``: :class:`SQLiteAdapter`
    - ``postgresql`` / ``postgres``: :class:`PostgreSQLAdapter`
    - ``sqlalchemy``: :class:`SQLAlchemyAdapter`
    """

    def __init__(self):
        self._factories: dict[str, type[DatabaseAdapter]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["sqlite"] = SQLiteAdapter
        self._factories["postgresql"] = PostgreSQLAdapter
        self._factories["postgres"] = PostgreSQLAdapter  # Alias
        self._factories["sqlalchemy"] = SQLAlchemyAdapter

    def register(self, name: str, adapter_class: type[DatabaseAdapter]) -> None:
        """Register an adapter factory."""
        self._factories[name.lower()] = adapter_class

    def create(self, name: str, settings: ConnectionSettings, **kwargs: Any) -> DatabaseAdapter:
        """Create an adapter by name."""
        name = name.lower()
        if name not in self._factories:
            raise ConfigError(f"Unknown database adapter: {name}").with_context(
                available=self.list_adapters()
            )
        return self._factories[name](settings, **kwargs)

    def list_adapters(self) -> list[str]:
        """List registered adapter names."""
        return sorted(self._factories.keys())


# Global registry
adapter_registry = AdapterRegistry()


def get_adapter(settings: ConnectionSettings, *, logger: Any = None) -> DatabaseAdapter:
    """
    Get an (unconnected) adapter for ``settings.backend``.

    Usage:
        adapter = get_adapter(ConnectionSettings.parse("sqlite:///books.db"))
    """
    return adapter_registry.create(settings.backend, settings, logger=logger)


__all__ = [
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter",
]
