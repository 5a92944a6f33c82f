"""Database adapter base class.

Manifesto:
    The session layer speaks one vocabulary (acquire, begin, execute,
    commit, release) and never touches a driver directly.  Each adapter
    maps that vocabulary onto its driver and its pool, and translates the
    driver's exceptions into the rowspine error taxonomy.

Features:
    - Abstract ``connect()``, ``acquire()``, ``release()``, ``close()``
    - ``connection()`` context manager: guaranteed release on every exit path
    - Transaction and savepoint primitives with adapter-specific overrides
    - ``execute()`` wraps driver errors in ``QueryError`` / ``IntegrityError``
      and turns an interrupted statement into the caller's cancellation error
    - ``ConnectionPool``: bounded, thread-safe pool for drivers without one

Tags:
    rowspine, database, abstract-base, adapter-pattern, pool
"""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from rowspine.core.connection import ConnectionSettings
from rowspine.core.dialect import Dialect, get_dialect
from rowspine.core.errors import (
    DatabaseConnectionError,
    IntegrityError,
    QueryError,
    SessionClosedError,
    SpineError,
)
from rowspine.core.logging import get_logger
from rowspine.core.protocols import DBAPIConnection, DBAPICursor

if TYPE_CHECKING:
    from rowspine.db.context import Context


class ConnectionPool:
    """Bounded LIFO pool of driver connections.

    Connections are created lazily up to ``max_size``; callers beyond that
    block for up to ``timeout`` seconds.
    """

    def __init__(
        self,
        factory: Callable[[], Any],
        *,
        max_size: int = 5,
        timeout: float = 30.0,
        on_close: Callable[[Any], None] | None = None,
    ):
        self._factory = factory
        self._max_size = max_size
        self._timeout = timeout
        self._on_close = on_close or (lambda conn: conn.close())
        self._idle: queue.LifoQueue[Any] = queue.LifoQueue()
        self._slots = threading.BoundedSemaphore(max_size)
        self._lock = threading.Lock()
        self._in_use = 0
        self._closed = False

    @property
    def size(self) -> int:
        return self._idle.qsize() + self._in_use

    @property
    def idle(self) -> int:
        return self._idle.qsize()

    @property
    def in_use(self) -> int:
        return self._in_use

    def get(self) -> Any:
        if self._closed:
            raise SessionClosedError()
        if not self._slots.acquire(timeout=self._timeout):
            raise DatabaseConnectionError(
                f"timed out after {self._timeout}s waiting for a pooled connection"
            )
        try:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                conn = self._factory()
        except BaseException:
            self._slots.release()
            raise
        with self._lock:
            self._in_use += 1
        return conn

    def put(self, conn: Any, *, discard: bool = False) -> None:
        with self._lock:
            self._in_use -= 1
        if discard or self._closed:
            self._on_close(conn)
        else:
            self._idle.put(conn)
        self._slots.release()

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            self._on_close(conn)


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    An adapter owns the connection pool for one :class:`ConnectionSettings`
    value.  Connections handed out by :meth:`acquire` must come back through
    :meth:`release`; :meth:`connection` does both.
    """

    #: Dialect used when the adapter cannot detect one from the driver.
    dialect_name: str = "sqlite"

    #: Driver exception classes translated by :meth:`execute`.
    driver_errors: tuple[type[BaseException], ...] = ()

    def __init__(self, settings: ConnectionSettings, *, logger: Any = None):
        self._settings = settings
        self._log = logger or get_logger(__name__, backend=settings.backend)
        self._dialect: Dialect = get_dialect(self.dialect_name)
        self._connected = False
        self._closed = False
        self._lock = threading.Lock()

    @property
    def settings(self) -> ConnectionSettings:
        return self._settings

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this adapter's database type."""
        return self._dialect

    @property
    def backend(self) -> str:
        return self._settings.backend

    @property
    def is_connected(self) -> bool:
        """Whether the pool is open."""
        return self._connected

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pool_size(self) -> int:
        return int(self._settings.option("pool_size", 5))

    @property
    def pool_timeout(self) -> float:
        return float(self._settings.option("pool_timeout", 30.0))

    # -- Lifecycle ---------------------------------------------------------

    @abstractmethod
    def connect(self) -> None:
        """Open the pool and verify the backend is reachable."""
        ...

    @abstractmethod
    def acquire(self) -> DBAPIConnection:
        """Borrow a connection from the pool."""
        ...

    @abstractmethod
    def release(self, conn: DBAPIConnection, *, discard: bool = False) -> None:
        """Return a borrowed connection; ``discard`` closes it instead."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close every pooled connection."""
        ...

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError()
        if not self._connected:
            with self._lock:
                if not self._connected:
                    self.connect()

    @contextmanager
    def connection(self) -> Iterator[DBAPIConnection]:
        """Borrow a connection for the duration of the block."""
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    # -- Transactions ------------------------------------------------------

    def begin(self, conn: DBAPIConnection) -> None:
        self._run(conn, "BEGIN")

    def commit(self, conn: DBAPIConnection) -> None:
        conn.commit()

    def rollback(self, conn: DBAPIConnection) -> None:
        conn.rollback()

    def commit_standalone(self, conn: DBAPIConnection) -> None:
        """Make a write issued outside a transaction durable.

        Adapters whose connections run in autocommit mode need nothing here.
        """

    def savepoint(self, conn: DBAPIConnection, name: str) -> None:
        self._run(conn, f"SAVEPOINT {name}")

    def release_savepoint(self, conn: DBAPIConnection, name: str) -> None:
        self._run(conn, f"RELEASE SAVEPOINT {name}")

    def rollback_to_savepoint(self, conn: DBAPIConnection, name: str) -> None:
        self._run(conn, f"ROLLBACK TO SAVEPOINT {name}")

    def interrupt(self, conn: DBAPIConnection) -> None:
        """Abort the statement currently running on ``conn`` (any thread)."""

    # -- Execution ---------------------------------------------------------

    def execute(
        self,
        conn: DBAPIConnection,
        sql: str,
        args: Sequence[Any] = (),
        ctx: Context | None = None,
    ) -> DBAPICursor:
        """Execute one statement and return the open driver cursor.

        Raises:
            QueryError / IntegrityError: the driver rejected the statement
            CancelledError: ``ctx`` was cancelled while the statement ran
        """
        if ctx is not None:
            ctx.check()
        cursor = conn.cursor()
        unregister = ctx.on_cancel(lambda: self.interrupt(conn)) if ctx is not None else None
        try:
            cursor.execute(sql, tuple(args))
        except self.driver_errors as e:
            cursor.close()
            if ctx is not None and ctx.err() is not None:
                raise ctx.err() from e
            raise self.translate_error(e, sql) from e
        finally:
            if unregister is not None:
                unregister()
        return cursor

    def _run(self, conn: DBAPIConnection, sql: str) -> None:
        cursor = self.execute(conn, sql)
        cursor.close()

    def translate_error(self, exc: BaseException, sql: str | None = None) -> SpineError:
        """Wrap a driver exception, keeping it as ``cause``."""
        names = {cls.__name__ for cls in type(exc).__mro__}
        error_cls = IntegrityError if "IntegrityError" in names else QueryError
        error = error_cls(str(exc).strip() or type(exc).__name__, cause=exc)
        error.with_context(backend=self.backend, sql=sql)
        return error

    def __enter__(self) -> DatabaseAdapter:
        self._ensure_open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = [
    "ConnectionPool",
    "DatabaseAdapter",
]
