"""Collection: a named table or view within a session or transaction scope.

A Collection holds no data.  Two Collections with the same name bound to
the same handle are equal.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from rowspine.core.errors import QueryError
from rowspine.db.compiler import Statement
from rowspine.db.expr import And, Comparison, Condition, to_condition
from rowspine.db.query import Deleter, Inserter, Result

if TYPE_CHECKING:
    from rowspine.db.base import BaseSession, ExecResult
    from rowspine.db.context import Context


class Collection:
    """Handle on one table."""

    __slots__ = ("_handle", "_name")

    def __init__(self, handle: BaseSession, name: str):
        self._handle = handle
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def handle(self) -> BaseSession:
        return self._handle

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Collection):
            return NotImplemented
        return self._handle is other._handle and self._name == other._name

    def __hash__(self) -> int:
        return hash((id(self._handle), self._name))

    def __repr__(self) -> str:
        return f"Collection({self._name!r})"

    # -- Metadata ----------------------------------------------------------

    def exists(self, ctx: Context | None = None) -> bool:
        """Whether the backend catalog knows this table or view."""
        stmt = Statement(self._handle.dialect.table_exists_query(), (self._name,))
        with self._handle._cursor(stmt, ctx=ctx) as cursor:
            found = cursor.next(dict) is not None
            if cursor.err is not None:
                raise cursor.err
        return found

    def primary_keys(self, ctx: Context | None = None) -> list[str]:
        """Primary-key columns, read from the catalog once per session."""
        return self._handle._primary_keys(self._name, ctx)

    # -- Queries -----------------------------------------------------------

    def find(self, *conds: Any) -> Result:
        """Query over this collection.

        A single scalar (or a tuple for composite keys) means primary-key
        equality; anything else is a condition (see
        :func:`~rowspine.db.expr.to_condition`).  Use ``find({"code": "x"})``
        for string keys: a lone string is raw SQL.
        """
        result = Result(handle=self._handle, sources=(self._name,), collection=self)
        if len(conds) == 1 and not isinstance(conds[0], (str, Mapping, Condition)) and conds[0] is not None:
            return result.where(self._key_condition(conds[0]))
        return result.where(to_condition(*conds))

    def _key_condition(self, key: Any) -> Condition:
        pks = self.primary_keys()
        if not pks:
            raise QueryError(f"{self._name} has no primary key; pass a condition").with_context(
                target=self._name
            )
        values = key if isinstance(key, tuple) else (key,)
        if len(values) != len(pks):
            raise QueryError(
                f"{self._name} primary key is {pks}, got {len(values)} value(s)"
            ).with_context(target=self._name)
        return And(*(Comparison(col, "=", value) for col, value in zip(pks, values)))

    def count(self, ctx: Context | None = None) -> int:
        return self.find().count(ctx)

    # -- Writes ------------------------------------------------------------

    def insert(self, record: Any, ctx: Context | None = None) -> ExecResult:
        """Insert one record or mapping.

        The generated key is available as ``result.id``: from ``RETURNING``
        where the dialect supports it, else the driver's ``lastrowid``.
        """
        ins = Inserter(handle=self._handle, table=self._name).values(record)
        if self._handle.dialect.returning:
            pks = self.primary_keys(ctx)
            if pks:
                ins = ins.returning(*pks)
        return ins.exec(ctx)

    def insert_returning(self, record: Any, ctx: Context | None = None) -> Any:
        """Insert ``record``, then reload it so defaults filled in by the
        database (generated keys included) are visible on the same object.
        """
        result = self.insert(record, ctx)
        pks = self.primary_keys(ctx)
        if len(pks) == 1 and result.id is not None:
            key: Any = result.id
        else:
            key = self._handle.mapper.primary_key_value(record, pks)
        stored = self.find(key).one(type(record), ctx=ctx)
        if isinstance(record, dict):
            record.update(stored)
        else:
            for info in self._handle.mapper.field_map(type(record)).entries:
                if not info.ignored:
                    setattr(record, info.name, getattr(stored, info.name))
        return record

    def truncate(self, ctx: Context | None = None) -> ExecResult:
        """Delete every row."""
        return Deleter(handle=self._handle, table=self._name).exec(ctx)


__all__ = ["Collection"]
