"""
Canonical protocol definitions for rowspine.

Two families of structural contracts live here:

- **Driver shapes**: the slice of DB-API 2.0 (PEP 249) the adapters rely on.
  ``sqlite3``, ``psycopg2`` and SQLAlchemy's pooled raw connections all
  satisfy them without registration.
- **Record capabilities**: optional methods a record type may define.
  The session checks them with ``isinstance(record, Protocol)`` instead of
  requiring a base class.

Architecture:
    ::

        protocols.py
        ├── DBAPICursor        execute / fetchone / fetchmany / close / description
        ├── DBAPIConnection    cursor / commit / rollback / close
        ├── BeforeInsert / AfterInsert
        ├── BeforeUpdate / AfterUpdate
        ├── BeforeDelete / AfterDelete
        └── RecordStore        store(session) -> Collection subclass

Examples:
    >>> @dataclass
    ... class Book:
    ...     __collection__ = "books"
    ...     id: int = column("id,omitempty", default=0)
    ...     title: str = ""
    ...
    ...     def before_insert(self, session):
    ...         self.title = self.title.strip()
    >>> isinstance(Book(), BeforeInsert)
    True

Tags:
    protocol, dbapi, record, hooks, rowspine
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# Driver Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class DBAPICursor(Protocol):
    """Minimal PEP 249 cursor."""

    @property
    def description(self) -> Sequence[Sequence[Any]] | None: ...

    @property
    def rowcount(self) -> int: ...

    def execute(self, sql: str, params: Sequence[Any] = ...) -> Any: ...

    def fetchone(self) -> Sequence[Any] | None: ...

    def fetchmany(self, size: int = ...) -> Sequence[Sequence[Any]]: ...

    def close(self) -> None: ...


@runtime_checkable
class DBAPIConnection(Protocol):
    """Minimal PEP 249 connection."""

    def cursor(self) -> Any: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Record Capability Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class BeforeInsert(Protocol):
    def before_insert(self, session: Any) -> None: ...


@runtime_checkable
class AfterInsert(Protocol):
    def after_insert(self, session: Any) -> None: ...


@runtime_checkable
class BeforeUpdate(Protocol):
    def before_update(self, session: Any) -> None: ...


@runtime_checkable
class AfterUpdate(Protocol):
    def after_update(self, session: Any) -> None: ...


@runtime_checkable
class BeforeDelete(Protocol):
    def before_delete(self, session: Any) -> None: ...


@runtime_checkable
class AfterDelete(Protocol):
    def after_delete(self, session: Any) -> None: ...


@runtime_checkable
class RecordStore(Protocol):
    """Record type bound to a custom Collection subclass.

    Declare ``store`` as a classmethod so it works on the type (``get``) and
    on instances (``save``, ``delete``)::

        @classmethod
        def store(cls, session):
            return BooksStore(session, "books")
    """

    def store(self, session: Any) -> Any: ...


__all__ = [
    "DBAPICursor",
    "DBAPIConnection",
    "BeforeInsert",
    "AfterInsert",
    "BeforeUpdate",
    "AfterUpdate",
    "BeforeDelete",
    "AfterDelete",
    "RecordStore",
]
