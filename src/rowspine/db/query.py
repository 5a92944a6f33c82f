"""Immutable query builders.

Every builder is a frozen dataclass; each chained call returns a **new**
value via :func:`dataclasses.replace` and leaves the receiver untouched, so a
base query can be shared and refined independently::

    books = sess.collection("books").find().order_by("title")
    p_books = books.and_("title LIKE", "P%")

    books.count()       # unaffected by p_books
    p_books.all(Book)

Terminal calls (``all``, ``one``, ``iterator``, ``count``, ``exists``,
``exec``) compile the accumulated clauses and execute them through the
session or transaction scope the builder is bound to.  Compilation never
mutates the query.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from rowspine.core.dialect import Dialect, get_dialect
from rowspine.core.errors import QueryError
from rowspine.db import compiler
from rowspine.db.compiler import Statement
from rowspine.db.expr import And, Condition, Or, Raw, to_condition
from rowspine.db.mapper import default_mapper

if TYPE_CHECKING:
    from rowspine.db.base import BaseSession, ExecResult
    from rowspine.db.collection import Collection
    from rowspine.db.context import Context
    from rowspine.db.cursor import Cursor
    from rowspine.db.paginator import Paginator


def _and(current: Condition | None, args: tuple[Any, ...]) -> Condition | None:
    new = to_condition(*args)
    if new is None:
        return current
    if current is None:
        return new
    return And(current, new)


def _is_record(value: Any) -> bool:
    if isinstance(value, Mapping):
        return True
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _or(current: Condition | None, args: tuple[Any, ...]) -> Condition | None:
    new = to_condition(*args)
    if new is None:
        return current
    if current is None:
        return new
    return Or(current, new)


class _Bound:
    """Mixin for builders that execute through a session handle."""

    handle: BaseSession | None

    def _require_handle(self) -> BaseSession:
        if self.handle is None:
            raise QueryError(f"{type(self).__name__} is not bound to a session")
        return self.handle

    def _dialect(self, dialect: Dialect | None = None) -> Dialect:
        if dialect is not None:
            return dialect
        if self.handle is not None:
            return self.handle.dialect
        return get_dialect("sqlite")

    def __str__(self) -> str:
        return self.compile().sql  # type: ignore[attr-defined]


@dataclass(frozen=True)
class Join:
    kind: str
    table: str
    on: Condition | None = None
    using: tuple[str, ...] = ()


# =============================================================================
# SELECT
# =============================================================================


@dataclass(frozen=True)
class Selector(_Bound):
    """SELECT statement under construction."""

    handle: BaseSession | None = field(default=None, repr=False, compare=False)
    selected: tuple[str | Raw, ...] = ()
    sources: tuple[str, ...] = ()
    joins: tuple[Join, ...] = ()
    where_clause: Condition | None = None
    groups: tuple[str | Raw, ...] = ()
    having_clause: Condition | None = None
    order: tuple[str | Raw, ...] = ()
    row_limit: int | None = None
    row_offset: int | None = None
    unique: bool = False

    # -- Clauses -----------------------------------------------------------

    def columns(self, *cols: str | Raw) -> Selector:
        """Add to the projection (default ``*``)."""
        return dataclasses.replace(self, selected=self.selected + cols)

    def from_(self, *tables: str) -> Selector:
        return dataclasses.replace(self, sources=self.sources + tables)

    def distinct(self, flag: bool = True) -> Selector:
        return dataclasses.replace(self, unique=flag)

    def _join(self, kind: str, table: str) -> Selector:
        return dataclasses.replace(self, joins=self.joins + (Join(kind, table),))

    def join(self, table: str) -> Selector:
        return self._join("INNER", table)

    def left_join(self, table: str) -> Selector:
        return self._join("LEFT", table)

    def right_join(self, table: str) -> Selector:
        return self._join("RIGHT", table)

    def full_join(self, table: str) -> Selector:
        return self._join("FULL", table)

    def cross_join(self, table: str) -> Selector:
        return self._join("CROSS", table)

    def on(self, *cond: Any) -> Selector:
        """Set the matching condition of the most recent join."""
        if not self.joins:
            raise QueryError("on() needs a preceding join()")
        last = self.joins[-1]
        updated = dataclasses.replace(last, on=_and(last.on, cond))
        return dataclasses.replace(self, joins=self.joins[:-1] + (updated,))

    def using(self, *cols: str) -> Selector:
        if not self.joins:
            raise QueryError("using() needs a preceding join()")
        updated = dataclasses.replace(self.joins[-1], using=self.joins[-1].using + cols)
        return dataclasses.replace(self, joins=self.joins[:-1] + (updated,))

    def where(self, *cond: Any) -> Selector:
        """Narrow the result set; repeated calls are ANDed."""
        return dataclasses.replace(self, where_clause=_and(self.where_clause, cond))

    def and_(self, *cond: Any) -> Selector:
        return self.where(*cond)

    def or_(self, *cond: Any) -> Selector:
        return dataclasses.replace(self, where_clause=_or(self.where_clause, cond))

    def group_by(self, *cols: str | Raw) -> Selector:
        return dataclasses.replace(self, groups=self.groups + cols)

    def having(self, *cond: Any) -> Selector:
        return dataclasses.replace(self, having_clause=_and(self.having_clause, cond))

    def order_by(self, *cols: str | Raw) -> Selector:
        """``"title"`` ascending, ``"-title"`` descending, or ``Raw`` text."""
        return dataclasses.replace(self, order=self.order + cols)

    def limit(self, n: int | None) -> Selector:
        if n is not None and n < 0:
            raise QueryError(f"limit must be >= 0, got {n}")
        return dataclasses.replace(self, row_limit=n)

    def offset(self, n: int | None) -> Selector:
        if n is not None and n < 0:
            raise QueryError(f"offset must be >= 0, got {n}")
        return dataclasses.replace(self, row_offset=n)

    # -- Compilation -------------------------------------------------------

    def compile(self, dialect: Dialect | None = None) -> Statement:
        return compiler.compile_select(self, self._dialect(dialect))

    # -- Terminals ---------------------------------------------------------

    def iterator(self, ctx: Context | None = None) -> Cursor:
        """Lazy cursor over the result rows."""
        handle = self._require_handle()
        stmt = self.compile(handle.dialect)
        return handle._cursor(stmt, ctx=ctx, source=self)

    def all(
        self,
        record_type: Any = dict,
        into: list[Any] | None = None,
        ctx: Context | None = None,
    ) -> list[Any]:
        """Every row, decoded into ``record_type`` and appended to ``into``."""
        return self.iterator(ctx).all(record_type, into=into)

    def one(self, record_type: Any = dict, ctx: Context | None = None) -> Any:
        """First row (implicit ``LIMIT 1``).

        Raises:
            NotFoundError: the query matched no rows
        """
        return self.limit(1).iterator(ctx).one(record_type)

    def count(self, ctx: Context | None = None) -> int:
        """Rows matched, ignoring ordering, limit and offset."""
        handle = self._require_handle()
        stmt = compiler.compile_count(self, handle.dialect)
        return int(handle._cursor(stmt, ctx=ctx).one(dict)["total"])

    def exists(self, ctx: Context | None = None) -> bool:
        handle = self._require_handle()
        stmt = compiler.compile_exists(self, handle.dialect)
        with handle._cursor(stmt, ctx=ctx) as cursor:
            found = cursor.next(dict) is not None
            if cursor.err is not None:
                raise cursor.err
            return found

    def paginate(self, page_size: int) -> Paginator:
        from rowspine.db.paginator import Paginator

        return Paginator(self, page_size)

    def rebind(self, handle: BaseSession) -> Selector:
        return dataclasses.replace(self, handle=handle)


@dataclass(frozen=True)
class Result(Selector):
    """Selector produced by :meth:`Collection.find`.

    Bound to one table, so the row-set it selects can also be updated or
    deleted in place.
    """

    collection: Collection | None = field(default=None, repr=False, compare=False)

    def _table(self) -> str:
        if self.collection is None or self.joins or len(self.sources) != 1:
            raise QueryError("update()/delete() need a single-table collection query")
        return self.sources[0]

    def update(self, values: Any, ctx: Context | None = None) -> ExecResult:
        """``UPDATE`` every row matched by this query."""
        handle = self._require_handle()
        updater = Updater(handle=handle, table=self._table(), where_clause=self.where_clause)
        return updater.set(values).exec(ctx)

    def delete(self, ctx: Context | None = None) -> ExecResult:
        """``DELETE`` every row matched by this query."""
        handle = self._require_handle()
        return Deleter(handle=handle, table=self._table(), where_clause=self.where_clause).exec(ctx)


# =============================================================================
# INSERT / UPDATE / DELETE
# =============================================================================


@dataclass(frozen=True)
class Inserter(_Bound):
    """INSERT statement under construction."""

    handle: BaseSession | None = field(default=None, repr=False, compare=False)
    table: str = ""
    cols: tuple[str, ...] = ()
    rows: tuple[tuple[Any, ...], ...] = ()
    returned: tuple[str, ...] = ()

    def into(self, table: str) -> Inserter:
        return dataclasses.replace(self, table=table)

    def columns(self, *cols: str) -> Inserter:
        return dataclasses.replace(self, cols=self.cols + cols)

    def values(self, *values: Any) -> Inserter:
        """Add one row: positional values, a mapping, or a record.

        Records and mappings fix the column list on first use; later rows
        must write the same columns.
        """
        if len(values) == 1 and _is_record(values[0]):
            mapper = self.handle.mapper if self.handle is not None else default_mapper
            pairs = mapper.encode(values[0])
            if not self.cols:
                if self.rows:
                    raise QueryError("rows must write the same columns").with_context(target=self.table)
                return dataclasses.replace(
                    self,
                    cols=tuple(col for col, _ in pairs),
                    rows=self.rows + (tuple(v for _, v in pairs),),
                )
            row = dict(pairs)
            if set(row) != set(self.cols):
                raise QueryError(
                    f"row writes {sorted(row)} but the insert has columns {list(self.cols)}"
                ).with_context(target=self.table)
            return dataclasses.replace(self, rows=self.rows + (tuple(row[c] for c in self.cols),))
        return dataclasses.replace(self, rows=self.rows + (tuple(values),))

    def returning(self, *cols: str) -> Inserter:
        return dataclasses.replace(self, returned=self.returned + cols)

    def compile(self, dialect: Dialect | None = None) -> Statement:
        return compiler.compile_insert(self, self._dialect(dialect))

    def exec(self, ctx: Context | None = None) -> ExecResult:
        handle = self._require_handle()
        return handle._exec(self.compile(handle.dialect), ctx=ctx, operation="insert", target=self.table)


@dataclass(frozen=True)
class Updater(_Bound):
    """UPDATE statement under construction."""

    handle: BaseSession | None = field(default=None, repr=False, compare=False)
    table: str = ""
    assignments: tuple[tuple[str, Any] | Raw, ...] = ()
    where_clause: Condition | None = None

    def set(self, *args: Any) -> Updater:
        """Add assignments.

        Accepted shapes::

            set("title", "Dune")
            set("stock = stock + ?", 1)
            set("stock = stock + 1")
            set({"title": "Dune", "stock": 3})
            set(book)                       # a mapped record
        """
        if not args:
            raise QueryError("set() needs at least one assignment")
        first = args[0]
        new: tuple[tuple[str, Any] | Raw, ...]
        if isinstance(first, Raw):
            new = (first,)
        elif isinstance(first, str):
            if "=" in first or "?" in first or len(args) == 1:
                new = (Raw(first, *args[1:]),)
            elif len(args) == 2:
                new = ((first, args[1]),)
            else:
                raise QueryError(f"cannot build an assignment from {args!r}")
        elif len(args) == 1 and _is_record(first):
            mapper = self.handle.mapper if self.handle is not None else default_mapper
            new = tuple(mapper.encode(first))
        else:
            raise QueryError(f"cannot build an assignment from {args!r}")
        return dataclasses.replace(self, assignments=self.assignments + new)

    def where(self, *cond: Any) -> Updater:
        return dataclasses.replace(self, where_clause=_and(self.where_clause, cond))

    def and_(self, *cond: Any) -> Updater:
        return self.where(*cond)

    def compile(self, dialect: Dialect | None = None) -> Statement:
        return compiler.compile_update(self, self._dialect(dialect))

    def exec(self, ctx: Context | None = None) -> ExecResult:
        handle = self._require_handle()
        return handle._exec(self.compile(handle.dialect), ctx=ctx, operation="update", target=self.table)


@dataclass(frozen=True)
class Deleter(_Bound):
    """DELETE statement under construction."""

    handle: BaseSession | None = field(default=None, repr=False, compare=False)
    table: str = ""
    where_clause: Condition | None = None

    def from_(self, table: str) -> Deleter:
        return dataclasses.replace(self, table=table)

    def where(self, *cond: Any) -> Deleter:
        return dataclasses.replace(self, where_clause=_and(self.where_clause, cond))

    def and_(self, *cond: Any) -> Deleter:
        return self.where(*cond)

    def compile(self, dialect: Dialect | None = None) -> Statement:
        return compiler.compile_delete(self, self._dialect(dialect))

    def exec(self, ctx: Context | None = None) -> ExecResult:
        handle = self._require_handle()
        return handle._exec(self.compile(handle.dialect), ctx=ctx, operation="delete", target=self.table)


__all__ = [
    "Deleter",
    "Inserter",
    "Join",
    "Result",
    "Selector",
    "Updater",
]
