"""PostgreSQL database adapter."""

from __future__ import annotations

import threading
from typing import Any

from rowspine.core.connection import DEFAULT_PORTS, ConnectionSettings
from rowspine.core.errors import ConfigError, DatabaseConnectionError
from rowspine.core.protocols import DBAPIConnection

from .base import DatabaseAdapter

# Options consumed by rowspine itself rather than forwarded to libpq.
_POOL_OPTIONS = {"pool_size", "pool_timeout"}


class PostgreSQLAdapter(DatabaseAdapter):
    """
    PostgreSQL database adapter.

    Uses ``psycopg2.pool.ThreadedConnectionPool``.  Pooled connections run in
    autocommit mode; ``begin()`` switches the pinned connection out of it for
    the life of the transaction.  ``ThreadedConnectionPool`` fails fast when
    exhausted, so a semaphore makes callers wait up to ``pool_timeout``.
    """

    dialect_name = "postgresql"

    def __init__(self, settings: ConnectionSettings, *, logger: Any = None):
        super().__init__(settings, logger=logger)
        self._pool: Any = None
        self._slots = threading.BoundedSemaphore(self.pool_size)
        self._psycopg2: Any = None

    def _driver(self) -> Any:
        if self._psycopg2 is None:
            try:
                import psycopg2
                import psycopg2.pool
            except ImportError:
                raise ConfigError(
                    "psycopg2 is required for PostgreSQL. Install with: pip install rowspine[postgresql]"
                ) from None
            self._psycopg2 = psycopg2
            self.driver_errors = (psycopg2.Error,)
        return self._psycopg2

    def connect(self) -> None:
        """Open the connection pool."""
        psycopg2 = self._driver()
        s = self._settings
        extra = {k: v for k, v in s.options.items() if k not in _POOL_OPTIONS}
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=self.pool_size,
                host=s.host or "localhost",
                port=s.port or DEFAULT_PORTS["postgresql"],
                dbname=s.database,
                user=s.user,
                password=s.password,
                **extra,
            )
        except psycopg2.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to PostgreSQL: {e}",
                cause=e,
            ).with_context(backend="postgresql", target=s.database) from e
        self._connected = True
        self._log.info("pool_opened", host=s.host, database=s.database, pool_size=self.pool_size)

    def acquire(self) -> DBAPIConnection:
        self._ensure_open()
        if not self._slots.acquire(timeout=self.pool_timeout):
            raise DatabaseConnectionError(
                f"timed out after {self.pool_timeout}s waiting for a pooled connection"
            )
        try:
            conn = self._pool.getconn()
            conn.autocommit = True
        except self._psycopg2.Error as e:
            self._slots.release()
            raise DatabaseConnectionError(f"Failed to acquire connection: {e}", cause=e) from e
        return conn

    def release(self, conn: DBAPIConnection, *, discard: bool = False) -> None:
        try:
            if self._pool is None:
                conn.close()
                return
            broken = bool(getattr(conn, "closed", False))
            if not (discard or broken) and not conn.autocommit:  # type: ignore[attr-defined]
                conn.rollback()
                conn.autocommit = True  # type: ignore[attr-defined]
            self._pool.putconn(conn, close=discard or broken)
        finally:
            self._slots.release()

    def close(self) -> None:
        """Close PostgreSQL connection pool."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
            self._connected = False
        self._log.info("pool_closed", database=self._settings.database)

    # -- Transactions ------------------------------------------------------

    def begin(self, conn: DBAPIConnection) -> None:
        # psycopg2 opens the transaction implicitly on the next statement
        conn.autocommit = False  # type: ignore[attr-defined]

    def commit(self, conn: DBAPIConnection) -> None:
        conn.commit()
        conn.autocommit = True  # type: ignore[attr-defined]

    def rollback(self, conn: DBAPIConnection) -> None:
        conn.rollback()
        conn.autocommit = True  # type: ignore[attr-defined]

    def interrupt(self, conn: DBAPIConnection) -> None:
        conn.cancel()  # type: ignore[attr-defined]


__all__ = [
    "PostgreSQLAdapter",
]
