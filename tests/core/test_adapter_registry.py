"""Tests for ``rowspine.core.adapters.registry``."""

from __future__ import annotations

import pytest

from rowspine.core.adapters import (
    AdapterRegistry,
    PostgreSQLAdapter,
    SQLAlchemyAdapter,
    SQLiteAdapter,
    get_adapter,
)
from rowspine.core.connection import ConnectionSettings
from rowspine.core.errors import ConfigError


class TestAdapterRegistry:
    def test_defaults(self):
        assert AdapterRegistry().list_adapters() == ["postgres", "postgresql", "sqlalchemy", "sqlite"]

    @pytest.mark.parametrize(
        ("url", "cls"),
        [
            ("sqlite:///:memory:", SQLiteAdapter),
            ("books.db", SQLiteAdapter),
            ("postgresql://h/db", PostgreSQLAdapter),
            ("postgres://h/db", PostgreSQLAdapter),
            ("sqlalchemy+sqlite:///books.db", SQLAlchemyAdapter),
        ],
    )
    def test_get_adapter(self, url, cls):
        adapter = get_adapter(ConnectionSettings.parse(url))
        assert isinstance(adapter, cls)
        assert adapter.is_connected is False

    def test_unknown_backend(self):
        with pytest.raises(ConfigError, match="Unknown database adapter") as exc:
            get_adapter(ConnectionSettings.parse("oracle://h/db"))
        assert "sqlite" in exc.value.context.metadata["available"]

    def test_register_custom(self):
        registry = AdapterRegistry()
        registry.register("Embedded", SQLiteAdapter)
        adapter = registry.create("embedded", ConnectionSettings.parse("memory"))
        assert isinstance(adapter, SQLiteAdapter)
