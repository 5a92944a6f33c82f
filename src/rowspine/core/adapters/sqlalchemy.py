"""SQLAlchemy-backed adapter: any SQLAlchemy URL, SQLAlchemy's pool.

Manifesto:
    Some deployments already standardise on SQLAlchemy engines (pool
    tuning, driver selection, ``echo``).  This adapter lets a rowspine
    session ride on such an engine: statements still come from rowspine's
    compiler, but connections are checked out of the engine's pool through
    ``Engine.raw_connection()``.

Open with ``sqlalchemy+<url>``::

    sess = rowspine.open("sqlalchemy+sqlite:///books.db")
    sess = rowspine.open("sqlalchemy+postgresql+psycopg2://demo:pw@db/booktown")

Tags:
    rowspine, sqlalchemy, engine, pool, adapter
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from rowspine.core.connection import ConnectionSettings
from rowspine.core.dialect import get_dialect
from rowspine.core.errors import ConfigError, DatabaseConnectionError
from rowspine.core.protocols import DBAPIConnection

from .base import DatabaseAdapter


def create_rowspine_engine(
    url: str,
    *,
    pool_size: int | None = None,
    pool_timeout: float | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine suited to rowspine's raw-connection use.

    SQLite connections are opened with ``isolation_level=None`` so rowspine's
    explicit ``BEGIN`` controls transactions, with foreign keys enabled.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False, "isolation_level": None})
        engine = create_engine(url, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout
    return create_engine(url, **pool_kwargs, **kwargs)


def _dialect_for(url: str) -> Any:
    """rowspine dialect for a SQLAlchemy URL, known before the engine exists."""
    try:
        return get_dialect(make_url(url).get_backend_name())
    except (ArgumentError, ValueError) as e:
        raise ConfigError(f"unsupported SQLAlchemy URL {url!r}: {e}", cause=e) from e


class SQLAlchemyAdapter(DatabaseAdapter):
    """
    Adapter over a SQLAlchemy ``Engine``.

    Non-SQLite drivers follow PEP 249 defaults: every connection is inside an
    implicit transaction, so standalone writes are committed by
    :meth:`commit_standalone` and ``begin()`` has nothing to do.
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        *,
        logger: Any = None,
        engine: Engine | None = None,
    ):
        super().__init__(settings, logger=logger)
        self._engine = engine
        if engine is not None:
            self._bind_engine(engine)
        else:
            self._dialect = _dialect_for(settings.database)

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @property
    def _is_sqlite(self) -> bool:
        return self._dialect.name == "sqlite"

    def _bind_engine(self, engine: Engine) -> None:
        self._dialect = get_dialect(engine.dialect.name)
        self.driver_errors = (engine.dialect.loaded_dbapi.Error,)

    def connect(self) -> None:
        if self._engine is None:
            self._engine = create_rowspine_engine(
                self._settings.database,
                pool_size=self.pool_size,
                pool_timeout=self.pool_timeout,
            )
            self._bind_engine(self._engine)
        self._connected = True
        self._log.info("pool_opened", engine=repr(self._engine.url), pool_size=self.pool_size)

    def acquire(self) -> DBAPIConnection:
        self._ensure_open()
        assert self._engine is not None
        try:
            return self._engine.raw_connection()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(
                f"Failed to acquire connection: {e}", cause=e
            ).with_context(backend=self._dialect.name) from e

    def release(self, conn: DBAPIConnection, *, discard: bool = False) -> None:
        if discard:
            conn.invalidate()  # type: ignore[attr-defined]
        # Returning a pooled connection resets (rolls back) it
        conn.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._engine is not None:
                self._engine.dispose()
            self._connected = False
        self._log.info("pool_closed")

    def begin(self, conn: DBAPIConnection) -> None:
        if self._is_sqlite:
            self._run(conn, "BEGIN")

    def commit_standalone(self, conn: DBAPIConnection) -> None:
        if not self._is_sqlite:
            conn.commit()

    def interrupt(self, conn: DBAPIConnection) -> None:
        raw = conn.dbapi_connection  # type: ignore[attr-defined]
        if hasattr(raw, "interrupt"):
            raw.interrupt()
        elif hasattr(raw, "cancel"):
            raw.cancel()


__all__ = [
    "SQLAlchemyAdapter",
    "create_rowspine_engine",
]
