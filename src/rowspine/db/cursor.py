"""Lazy, single-pass row cursor.

State machine::

    open ──first fetch──▶ iterating ──exhausted / error / close()──▶ closed
      └──────────────────────close()─────────────────────────────────┘

The statement runs on the first fetch and the cursor pins one pooled
connection until it closes.  ``next()`` returns ``None`` both when rows run
out and when something fails; check ``err`` to tell the two apart::

    cursor = books.iterator()
    while (book := cursor.next(Book)) is not None:
        ...
    if cursor.err is not None:
        raise cursor.err

Cursors are not thread-safe.
"""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum
from typing import TYPE_CHECKING, Any

from rowspine.core.errors import NoMoreRowsError, NotFoundError, QueryError, SpineError

if TYPE_CHECKING:
    from rowspine.core.protocols import DBAPIConnection, DBAPICursor
    from rowspine.db.base import BaseSession, ExecResult
    from rowspine.db.compiler import Statement
    from rowspine.db.context import Context
    from rowspine.db.query import Selector


class CursorState(str, Enum):
    OPEN = "open"
    ITERATING = "iterating"
    CLOSED = "closed"


class Cursor:
    """Single-use handle over the rows of one compiled statement."""

    def __init__(
        self,
        handle: BaseSession,
        stmt: Statement,
        *,
        ctx: Context | None = None,
        source: Selector | None = None,
    ):
        self._handle = handle
        self._stmt = stmt
        self._ctx = ctx
        self._source = source
        self._state = CursorState.OPEN
        self._conn: DBAPIConnection | None = None
        self._dbcursor: DBAPICursor | None = None
        self._columns: tuple[str, ...] = ()
        self._err: BaseException | None = None

    @property
    def state(self) -> CursorState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is CursorState.CLOSED

    @property
    def err(self) -> BaseException | None:
        """Why the last ``next()`` returned ``None``, or ``None`` if rows just ran out."""
        return self._err

    @property
    def sql(self) -> str:
        return self._stmt.sql

    @property
    def columns(self) -> list[str]:
        """Column names of the row-set (runs the statement if needed)."""
        if self._state is CursorState.OPEN:
            self._start()
        return list(self._columns)

    # -- Lifecycle ---------------------------------------------------------

    def _start(self) -> None:
        conn = self._handle._acquire()
        try:
            self._dbcursor = self._handle._execute(conn, self._stmt, self._ctx, operation="select")
        except BaseException:
            self._handle._release(conn)
            raise
        self._conn = conn
        self._columns = tuple(d[0] for d in self._dbcursor.description or ())
        self._state = CursorState.ITERATING

    def _fetchone(self) -> Any:
        adapter = self._handle.adapter
        try:
            return self._dbcursor.fetchone()  # type: ignore[union-attr]
        except adapter.driver_errors as e:
            if self._ctx is not None and self._ctx.cancelled:
                raise self._ctx.err() from e
            raise adapter.translate_error(e, self._stmt.sql) from e

    def close(self) -> None:
        """Release the row-set and its connection. Safe to call repeatedly."""
        if self._state is CursorState.CLOSED:
            return
        self._state = CursorState.CLOSED
        dbcursor, conn = self._dbcursor, self._conn
        self._dbcursor = self._conn = None
        try:
            if dbcursor is not None:
                dbcursor.close()
        finally:
            if conn is not None:
                self._handle._release(conn)

    def __enter__(self) -> Cursor:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- Fetching ----------------------------------------------------------

    def next(self, record_type: Any = dict) -> Any:
        """Decode the next row, or return ``None`` (see :attr:`err`)."""
        if self._state is CursorState.CLOSED:
            return None
        try:
            if self._state is CursorState.OPEN:
                self._start()
            if self._ctx is not None:
                self._ctx.check()
            row = self._fetchone()
            if row is None:
                self.close()
                return None
            return self._handle.mapper.decode(record_type, self._columns, row)
        except SpineError as e:
            self._err = e
            self.close()
            return None

    def scan(self, record_type: Any = dict) -> Any:
        """Like :meth:`next`, but raises instead of returning ``None``.

        Raises:
            NoMoreRowsError: the rows are exhausted
        """
        record = self.next(record_type)
        if record is None:
            if self._err is not None:
                raise self._err
            raise NoMoreRowsError()
        return record

    def all(self, record_type: Any = dict, into: list[Any] | None = None) -> list[Any]:
        """Consume every remaining row, then close.

        Records decoded before a failure stay in ``into``.
        """
        results = into if into is not None else []
        try:
            while (record := self.next(record_type)) is not None:
                results.append(record)
        finally:
            self.close()
        if self._err is not None:
            raise self._err
        return results

    def one(self, record_type: Any = dict) -> Any:
        """First row, then close.

        Raises:
            NotFoundError: the row-set is empty
        """
        try:
            record = self.next(record_type)
        finally:
            self.close()
        if record is None:
            if self._err is not None:
                raise self._err
            raise NotFoundError().with_context(sql=self._stmt.sql)
        return record

    def iter(self, record_type: Any = dict) -> Iterator[Any]:
        """Yield decoded records; a failure is raised, not swallowed."""
        try:
            while (record := self.next(record_type)) is not None:
                yield record
            if self._err is not None:
                raise self._err
        finally:
            self.close()

    def __iter__(self) -> Iterator[Any]:
        return self.iter(dict)

    # -- Row-set writes ----------------------------------------------------

    def _result_source(self) -> Any:
        if self._source is None or not hasattr(self._source, "delete"):
            raise QueryError("update()/delete() need a cursor produced by Collection.find()")
        return self._source

    def update(self, values: Any, ctx: Context | None = None) -> ExecResult:
        """``UPDATE`` the rows matched by the producing query."""
        return self._result_source().update(values, ctx=ctx or self._ctx)

    def delete(self, ctx: Context | None = None) -> ExecResult:
        """``DELETE`` the rows matched by the producing query."""
        return self._result_source().delete(ctx=ctx or self._ctx)

    def __repr__(self) -> str:
        return f"Cursor(state={self._state.value}, sql={self._stmt.sql!r})"


__all__ = ["Cursor", "CursorState"]
