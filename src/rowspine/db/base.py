"""Surface shared by :class:`Session` and :class:`TransactionScope`.

Both handles expose the same Collection / builder / raw-statement API.
They differ only in where connections come from: a Session borrows one
from its pool per operation, a TransactionScope always hands out its
pinned connection.  Subclasses implement ``_acquire``/``_release``.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any

from rowspine.core.adapters.base import DatabaseAdapter
from rowspine.core.dialect import Dialect
from rowspine.core.errors import MappingError, NotFoundError, SpineError
from rowspine.core.protocols import (
    AfterDelete,
    AfterInsert,
    AfterUpdate,
    BeforeDelete,
    BeforeInsert,
    BeforeUpdate,
    DBAPIConnection,
    DBAPICursor,
    RecordStore,
)
from rowspine.db.collection import Collection
from rowspine.db.compiler import Statement, raw_statement
from rowspine.db.context import Context
from rowspine.db.cursor import Cursor
from rowspine.db.expr import And, Comparison
from rowspine.db.mapper import Mapper, is_empty
from rowspine.db.query import Deleter, Inserter, Selector, Updater


@dataclass(frozen=True)
class ExecResult:
    """Outcome of an INSERT / UPDATE / DELETE or other non-query statement."""

    rows_affected: int = 0
    last_insert_id: Any = None
    returned: tuple[dict[str, Any], ...] = ()

    @property
    def id(self) -> Any:
        """Generated key: first RETURNING value, else the driver's lastrowid."""
        if self.returned:
            return next(iter(self.returned[0].values()))
        return self.last_insert_id


def collection_name(record_type: type) -> str:
    name = getattr(record_type, "__collection__", None)
    if not name:
        raise MappingError(
            f"{record_type.__name__} does not declare __collection__"
        ).with_context(target=record_type.__name__)
    return name


class BaseSession(ABC):
    """Collection, builder and statement API over one connection source."""

    adapter: DatabaseAdapter
    mapper: Mapper
    _log: Any
    _echo: bool = False

    # -- Connection source -------------------------------------------------

    @abstractmethod
    def _acquire(self) -> DBAPIConnection:
        """Connection for the next statement (may raise on a stale handle)."""

    @abstractmethod
    def _release(self, conn: DBAPIConnection) -> None:
        """Give back a connection obtained from :meth:`_acquire`."""

    @property
    @abstractmethod
    def in_transaction(self) -> bool: ...

    @property
    @abstractmethod
    def session(self) -> Any:
        """The owning :class:`Session`."""

    @abstractmethod
    def transaction(self, ctx: Context | None = None) -> AbstractContextManager[Any]:
        """Context manager yielding a transaction-scoped handle."""

    def tx(self, fn: Callable[[Any], Any], ctx: Context | None = None) -> Any:
        """Run ``fn(scope)`` in a transaction and return its result.

        Commits when ``fn`` returns, rolls back and re-raises when it raises.
        """
        with self.transaction(ctx) as scope:
            return fn(scope)

    def _default_ctx(self, ctx: Context | None) -> Context | None:
        return ctx

    def _track(self, cursor: Cursor) -> None:
        """Hook for scopes that must close their cursors when they end."""

    @property
    def dialect(self) -> Dialect:
        return self.adapter.dialect

    # -- Builders ----------------------------------------------------------

    def collection(self, name: str) -> Collection:
        return Collection(self, name)

    def collections(self, ctx: Context | None = None) -> list[str]:
        """Names of every user table."""
        stmt = Statement(self.dialect.list_tables_query())
        return [next(iter(row.values())) for row in self._cursor(stmt, ctx=ctx).all(dict)]

    def select(self, *cols: Any) -> Selector:
        return Selector(handle=self, selected=tuple(cols))

    def select_from(self, *tables: str) -> Selector:
        return Selector(handle=self, sources=tuple(tables))

    def insert_into(self, table: str) -> Inserter:
        return Inserter(handle=self, table=table)

    def update(self, table: str) -> Updater:
        return Updater(handle=self, table=table)

    def delete_from(self, table: str) -> Deleter:
        return Deleter(handle=self, table=table)

    # -- Raw statements ----------------------------------------------------

    def query(self, sql: str, *args: Any, ctx: Context | None = None) -> Cursor:
        """Cursor over a caller-written statement.

        Placeholders are ``?`` with positional arguments, or ``:name`` with a
        single mapping argument.
        """
        return self._cursor(raw_statement(sql, args, self.dialect), ctx=ctx)

    def exec(self, sql: str, *args: Any, ctx: Context | None = None) -> ExecResult:
        """Execute a caller-written statement that returns no rows of interest."""
        return self._exec(raw_statement(sql, args, self.dialect), ctx=ctx)

    # -- Records -----------------------------------------------------------

    def store(self, record_type: type) -> Collection:
        """Collection that reads and writes ``record_type``.

        A record declaring ``store(session)`` (see
        :class:`~rowspine.core.protocols.RecordStore`) gets its own
        Collection subclass bound to this handle; otherwise a plain
        Collection named by ``__collection__``.
        """
        if isinstance(record_type, RecordStore) and callable(record_type.store):
            coll = record_type.store(self)
            if not isinstance(coll, Collection):
                raise MappingError(
                    f"{record_type.__name__}.store() must return a Collection, "
                    f"got {type(coll).__name__}"
                ).with_context(target=record_type.__name__)
            return coll
        return self.collection(collection_name(record_type))

    def get(self, record_type: type, *cond: Any, ctx: Context | None = None) -> Any:
        """Fetch one record of ``record_type`` from its store.

        Raises:
            NotFoundError: nothing matched
        """
        return self.store(record_type).find(*cond).one(record_type, ctx=ctx)

    def _primary_keys(self, table: str, ctx: Context | None = None) -> list[str]:
        cache = self.session._pk_cache
        keys = cache.get(table)
        if keys is None:
            stmt = Statement(self.dialect.primary_keys_query(), (table,))
            keys = [next(iter(row.values())) for row in self._cursor(stmt, ctx=ctx).all(dict)]
            if keys:
                cache[table] = keys
        return list(keys)

    def _pk_condition(self, coll: Collection, record: Any) -> tuple[list[str], tuple[Any, ...], Any]:
        pks = coll.primary_keys()
        values = self.mapper.primary_key_value(record, pks)
        cond = And(*(Comparison(col, "=", value) for col, value in zip(pks, values)))
        return pks, values, cond

    def save(self, record: Any, ctx: Context | None = None) -> Any:
        """Insert ``record`` if its primary key is empty, otherwise update it.

        A generated key is written back into the record.
        """
        coll = self.store(type(record))
        pks, values, cond = self._pk_condition(coll, record)
        if any(is_empty(v) for v in values):
            if isinstance(record, BeforeInsert):
                record.before_insert(self)
            result = coll.insert(record, ctx=ctx)
            if len(pks) == 1 and result.id is not None:
                self.mapper.set_field(record, pks[0], result.id)
            if isinstance(record, AfterInsert):
                record.after_insert(self)
            return record

        if isinstance(record, BeforeUpdate):
            record.before_update(self)
        result = coll.find(cond).update(record, ctx=ctx)
        if result.rows_affected == 0:
            raise NotFoundError(f"no {coll.name} row with key {values!r}").with_context(
                operation="update", target=coll.name
            )
        if isinstance(record, AfterUpdate):
            record.after_update(self)
        return record

    def delete(self, record: Any, ctx: Context | None = None) -> None:
        """Delete the row behind ``record`` (matched by primary key)."""
        coll = self.store(type(record))
        _, values, cond = self._pk_condition(coll, record)
        if isinstance(record, BeforeDelete):
            record.before_delete(self)
        result = coll.find(cond).delete(ctx=ctx)
        if result.rows_affected == 0:
            raise NotFoundError(f"no {coll.name} row with key {values!r}").with_context(
                operation="delete", target=coll.name
            )
        if isinstance(record, AfterDelete):
            record.after_delete(self)

    # -- Execution ---------------------------------------------------------

    def _cursor(
        self,
        stmt: Statement,
        *,
        ctx: Context | None = None,
        source: Selector | None = None,
    ) -> Cursor:
        cursor = Cursor(self, stmt, ctx=self._default_ctx(ctx), source=source)
        self._track(cursor)
        return cursor

    def _exec(
        self,
        stmt: Statement,
        *,
        ctx: Context | None = None,
        operation: str | None = None,
        target: str | None = None,
    ) -> ExecResult:
        ctx = self._default_ctx(ctx)
        conn = self._acquire()
        try:
            cursor = self._execute(conn, stmt, ctx, operation=operation, target=target)
            try:
                returned: tuple[dict[str, Any], ...] = ()
                if cursor.description:
                    names = [d[0] for d in cursor.description]
                    returned = tuple(dict(zip(names, row)) for row in cursor.fetchall())  # type: ignore[attr-defined]
                result = ExecResult(
                    rows_affected=max(cursor.rowcount, 0),
                    last_insert_id=getattr(cursor, "lastrowid", None),
                    returned=returned,
                )
            finally:
                cursor.close()
            if not self.in_transaction:
                self.adapter.commit_standalone(conn)
        finally:
            self._release(conn)
        return result

    def _execute(
        self,
        conn: DBAPIConnection,
        stmt: Statement,
        ctx: Context | None,
        *,
        operation: str | None = None,
        target: str | None = None,
    ) -> DBAPICursor:
        """Run one statement through the adapter, logging it."""
        started = time.perf_counter()
        try:
            cursor = self.adapter.execute(conn, stmt.sql, stmt.args, ctx)
        except SpineError as e:
            if e.context.operation is None:
                e.with_context(operation=operation or _verb(stmt.sql))
            if e.context.target is None and target is not None:
                e.with_context(target=target)
            self._log.warning(
                "statement_failed",
                sql=stmt.sql,
                args=list(stmt.args),
                error=e.message,
                error_type=type(e).__name__,
            )
            raise
        log: Callable[..., Any] = self._log.info if self._echo else self._log.debug
        log(
            "statement_executed",
            sql=stmt.sql,
            args=list(stmt.args),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        return cursor


def _verb(sql: str) -> str:
    head = sql.lstrip().split(None, 1)
    return head[0].lower() if head else ""


__all__ = [
    "BaseSession",
    "ExecResult",
    "collection_name",
]
