"""SQLite database adapter."""

from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from rowspine.core.connection import ConnectionSettings
from rowspine.core.errors import DatabaseConnectionError
from rowspine.core.protocols import DBAPIConnection

from .base import ConnectionPool, DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter.

    Uses the built-in sqlite3 module. Suitable for:
    - Development and testing
    - Embedded, single-host applications

    Connections run with ``isolation_level=None`` so that transactions are
    only ever opened by an explicit ``BEGIN``.  In-memory databases are
    opened as a named shared-cache database so every pooled connection sees
    the same data; an anchor connection keeps it alive until ``close()``.
    """

    dialect_name = "sqlite"
    driver_errors = (sqlite3.Error,)

    def __init__(self, settings: ConnectionSettings, *, logger: Any = None):
        super().__init__(settings, logger=logger)
        self._pool: ConnectionPool | None = None
        self._anchor: sqlite3.Connection | None = None
        if settings.is_memory:
            self._target = f"file:rowspine-{uuid.uuid4().hex}?mode=memory&cache=shared"
        else:
            self._target = settings.database

    @property
    def timeout(self) -> float:
        return float(self._settings.option("timeout", 5.0))

    @property
    def readonly(self) -> bool:
        return self._settings.option("mode") == "ro"

    def _open(self) -> sqlite3.Connection:
        uri = self._target.startswith("file:")
        try:
            conn = sqlite3.connect(
                self._target,
                timeout=self.timeout,
                check_same_thread=False,
                isolation_level=None,
                uri=uri,
            )
            conn.execute("PRAGMA foreign_keys = ON")
            if not self._settings.is_memory:
                conn.execute("PRAGMA journal_mode = WAL")
            if self.readonly:
                conn.execute("PRAGMA query_only = ON")
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to SQLite: {e}",
                cause=e,
            ).with_context(backend="sqlite", target=self._settings.database) from e
        return conn

    def connect(self) -> None:
        """Open the pool (and the anchor connection for memory databases)."""
        if self._settings.is_memory:
            self._anchor = self._open()
        self._pool = ConnectionPool(
            self._open,
            max_size=self.pool_size,
            timeout=self.pool_timeout,
        )
        self._connected = True
        self._log.info("pool_opened", database=self._settings.database, pool_size=self.pool_size)

    def acquire(self) -> DBAPIConnection:
        self._ensure_open()
        assert self._pool is not None
        return self._pool.get()

    def release(self, conn: DBAPIConnection, *, discard: bool = False) -> None:
        if self._pool is None:
            conn.close()
            return
        if not discard and conn.in_transaction:  # type: ignore[attr-defined]
            conn.rollback()
        self._pool.put(conn, discard=discard)

    def close(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._pool is not None:
                self._pool.close()
            if self._anchor is not None:
                self._anchor.close()
                self._anchor = None
            self._connected = False
        self._log.info("pool_closed", database=self._settings.database)

    def interrupt(self, conn: DBAPIConnection) -> None:
        conn.interrupt()  # type: ignore[attr-defined]


__all__ = [
    "SQLiteAdapter",
]
