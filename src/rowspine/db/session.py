"""Session: the pooled entry point.

    import rowspine

    sess = rowspine.open("sqlite:///books.db")
    books = sess.collection("books")
    print(books.find().order_by("title").all(Book))
    sess.close()

A Session is safe to share between threads: every operation borrows its
own pooled connection and returns it when done (cursors keep theirs until
they close).  Transactions pin one connection for their whole duration;
while a transaction is open on a thread, that thread must go through the
scope handle, and using the Session directly raises ``ScopeError``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rowspine.core.adapters import DatabaseAdapter, get_adapter
from rowspine.core.connection import ConnectionSettings, resolve_settings
from rowspine.core.errors import ScopeError, SessionClosedError
from rowspine.core.logging import get_logger
from rowspine.core.protocols import DBAPIConnection
from rowspine.core.settings import DatabaseSettings
from rowspine.db.base import BaseSession
from rowspine.db.context import Context
from rowspine.db.mapper import Mapper, default_mapper
from rowspine.db.transaction import TransactionScope


class Session(BaseSession):
    """Pooled connection to one database."""

    def __init__(
        self,
        settings: ConnectionSettings,
        *,
        logger: Any = None,
        echo: bool = False,
        adapter: DatabaseAdapter | None = None,
        mapper: Mapper | None = None,
    ):
        self._settings = settings
        self._log = logger or get_logger(
            "rowspine.db", backend=settings.backend, database=settings.database
        )
        self.adapter = adapter or get_adapter(settings, logger=self._log)
        self.mapper = mapper or default_mapper
        self._echo = echo
        self._pk_cache: dict[str, list[str]] = {}
        self._local = threading.local()
        self._closed = False

    @property
    def name(self) -> str:
        """Database name."""
        return self._settings.database

    @property
    def settings(self) -> ConnectionSettings:
        return self._settings

    @property
    def connection_url(self) -> str:
        return self._settings.url

    @property
    def session(self) -> Session:
        return self

    @property
    def in_transaction(self) -> bool:
        return False

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"Session({self._settings!r})"

    # -- Connection source -------------------------------------------------

    def _active_scope(self) -> TransactionScope | None:
        return getattr(self._local, "scope", None)

    def _acquire(self) -> DBAPIConnection:
        if self._closed:
            raise SessionClosedError()
        if self._active_scope() is not None:
            raise ScopeError(
                "a transaction is open on this thread; run statements through its scope"
            )
        return self.adapter.acquire()

    def _release(self, conn: DBAPIConnection) -> None:
        self.adapter.release(conn)

    # -- Transactions ------------------------------------------------------

    @contextmanager
    def transaction(self, ctx: Context | None = None) -> Iterator[TransactionScope]:
        """Begin a transaction; commit on normal exit, roll back on error."""
        conn = self._acquire()
        scope = TransactionScope(self, conn, ctx)
        try:
            scope._begin()
            self._local.scope = scope
            try:
                try:
                    yield scope
                except BaseException as e:
                    scope._rollback(e)
                    raise
                else:
                    scope._commit()
            finally:
                self._local.scope = None
        finally:
            self.adapter.release(conn, discard=scope.rollback_failed)

    # -- Lifecycle ---------------------------------------------------------

    def ping(self, ctx: Context | None = None) -> bool:
        """Round-trip ``SELECT 1`` (opens the pool on first use)."""
        self.query("SELECT 1", ctx=ctx).one()
        return True

    def close(self) -> None:
        """Close every pooled connection. Later use raises ``SessionClosedError``."""
        if self._closed:
            return
        self._closed = True
        self.adapter.close()
        self._log.debug("session_closed")

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def open(
    target: ConnectionSettings | DatabaseSettings | str | None = None,
    *,
    logger: Any = None,
    pool_size: int | None = None,
    pool_timeout: float | None = None,
    echo: bool | None = None,
) -> Session:
    """Open a session and verify the database answers.

    ``target`` is a :class:`ConnectionSettings`, a URL (or bare SQLite path),
    or a :class:`DatabaseSettings`.  ``None`` reads ``ROWSPINE_*`` from the
    environment.

    Raises:
        DatabaseConnectionError: the database is unreachable
        ConfigError: invalid URL or unknown backend
    """
    if target is None:
        target = DatabaseSettings()
    if isinstance(target, DatabaseSettings):
        if echo is None:
            echo = target.echo
        settings = target.to_connection_settings()
    else:
        settings = resolve_settings(target)

    options: dict[str, Any] = {}
    if pool_size is not None:
        options["pool_size"] = pool_size
    if pool_timeout is not None:
        options["pool_timeout"] = pool_timeout
    if options:
        settings = settings.with_options(**options)

    session = Session(settings, logger=logger, echo=bool(echo))
    try:
        session.ping()
    except BaseException:
        session.close()
        raise
    return session


__all__ = ["Session", "open"]
