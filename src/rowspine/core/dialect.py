"""SQL dialect abstraction for the statement compiler.

The compiler builds every statement with neutral ``?`` markers and asks the
session's ``Dialect`` for the pieces that differ between backends:
placeholder style, LIMIT/OFFSET syntax, RETURNING support, and the catalog
queries behind ``Collection.exists()``, ``Session.collections()`` and
primary-key lookup for ``Collection.find(id)``.

Architecture::

    Compiler (neutral SQL, "?" markers)
                  │
                  ▼
    ┌──────────┐ ┌──────────────┐ ┌────────┐
    │ SQLite   │ │ PostgreSQL   │ │ MySQL  │
    │ ?, ?, ?  │ │ %s, %s, %s   │ │ %s,%s  │
    │ LIMIT -1 │ │ OFFSET n     │ │ LIMIT  │
    │ OFFSET n │ │ RETURNING    │ │ 2^64-1 │
    └──────────┘ └──────────────┘ └────────┘

Examples:
    >>> from rowspine.core.dialect import get_dialect
    >>> d = get_dialect("postgresql")
    >>> d.placeholders(3)
    '%s, %s, %s'
    >>> d.limit_offset(10, 20)
    'LIMIT 10 OFFSET 20'
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment** valid for the target database.
    Dialects are stateless and shared.
    """

    @property
    def name(self) -> str:
        """Human-readable dialect name (e.g. ``'sqlite'``)."""
        ...

    @property
    def paramstyle(self) -> str:
        """DB-API paramstyle of the driver: ``qmark`` or ``format``."""
        ...

    @property
    def returning(self) -> bool:
        """Whether ``INSERT ... RETURNING`` is available."""
        ...

    # -- Placeholder generation --------------------------------------------

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholder list."""
        ...

    # -- Pagination --------------------------------------------------------

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        """``LIMIT``/``OFFSET`` clause, or ``''`` when neither is set."""
        ...

    # -- Introspection -----------------------------------------------------

    def table_exists_query(self) -> str:
        """Query taking one table-name placeholder; returns rows if the table exists."""
        ...

    def list_tables_query(self) -> str:
        """Query returning one row per user table, name in the first column."""
        ...

    def primary_keys_query(self) -> str:
        """Query taking one table-name placeholder; returns primary-key column names in order."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class SQLiteDialect:
    """SQLite dialect: ``?`` placeholders, ``LIMIT -1`` for bare offsets."""

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def paramstyle(self) -> str:
        return "qmark"

    @property
    def returning(self) -> bool:
        return False

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        if limit is None and not offset:
            return ""
        # SQLite only accepts OFFSET after a LIMIT; -1 means unbounded
        clause = f"LIMIT {limit if limit is not None else -1}"
        if offset:
            clause += f" OFFSET {offset}"
        return clause

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type IN ('table', 'view') AND name = ?"

    def list_tables_query(self) -> str:
        return (
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )

    def primary_keys_query(self) -> str:
        return "SELECT name FROM pragma_table_info(?) WHERE pk > 0 ORDER BY pk"


class PostgreSQLDialect:
    """PostgreSQL dialect: ``%s`` placeholders (psycopg2), ``RETURNING``."""

    @property
    def name(self) -> str:
        return "postgresql"

    @property
    def paramstyle(self) -> str:
        return "format"

    @property
    def returning(self) -> bool:
        return True

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        parts = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if offset:
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s"
        )

    def list_tables_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_type = 'BASE TABLE' "
            "ORDER BY table_name"
        )

    def primary_keys_query(self) -> str:
        return (
            "SELECT kcu.column_name FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "ON tc.constraint_name = kcu.constraint_name "
            "AND tc.table_schema = kcu.table_schema "
            "WHERE tc.constraint_type = 'PRIMARY KEY' "
            "AND tc.table_schema = current_schema() AND tc.table_name = %s "
            "ORDER BY kcu.ordinal_position"
        )


class MySQLDialect:
    """MySQL dialect: ``%s`` placeholders, reached through the SQLAlchemy adapter."""

    @property
    def name(self) -> str:
        return "mysql"

    @property
    def paramstyle(self) -> str:
        return "format"

    @property
    def returning(self) -> bool:
        return False

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        if limit is None and not offset:
            return ""
        # MySQL has no unbounded LIMIT; use the documented maximum
        clause = f"LIMIT {limit if limit is not None else 18446744073709551615}"
        if offset:
            clause += f" OFFSET {offset}"
        return clause

    def table_exists_query(self) -> str:
        return (
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s"
        )

    def list_tables_query(self) -> str:
        return (
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_TYPE = 'BASE TABLE' "
            "ORDER BY TABLE_NAME"
        )

    def primary_keys_query(self) -> str:
        return (
            "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE "
            "WHERE TABLE_SCHEMA = DATABASE() AND CONSTRAINT_NAME = 'PRIMARY' "
            "AND TABLE_NAME = %s ORDER BY ORDINAL_POSITION"
        )


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
    "mysql": MySQLDialect(),
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (third-party drivers, test doubles)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "MySQLDialect",
    "get_dialect",
    "register_dialect",
]
