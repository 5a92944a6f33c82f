"""Statement compilation.

Query values are compiled in two steps.  The builders below assemble
**neutral SQL** with ``?`` markers and a flat argument list; :func:`bind`
then rewrites the markers into the session dialect's placeholder style.
Raw statements passed to ``Session.query()`` go through the same
:func:`bind` step, so callers always write ``?`` (or ``:name``).

Binding skips quoted literals and identifiers, and doubles ``%`` for
``format``-style drivers (psycopg2, MySQL) whose parameter substitution
would otherwise consume it.

Examples:
    >>> from rowspine.core.dialect import get_dialect
    >>> bind("SELECT * FROM t WHERE a = ? AND b LIKE 'x%?'", get_dialect("postgresql"))
    "SELECT * FROM t WHERE a = %s AND b LIKE 'x%%?'"
    >>> named_to_positional("SELECT * FROM t WHERE id = :id AND v::text = :v", {"id": 1, "v": "a"})
    ('SELECT * FROM t WHERE id = ? AND v::text = ?', [1, 'a'])
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rowspine.core.dialect import Dialect
from rowspine.core.errors import QueryError
from rowspine.db.expr import Condition, Raw

if TYPE_CHECKING:
    from rowspine.db.query import Deleter, Inserter, Selector, Updater

_NAMED_RE = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")


@dataclass(frozen=True)
class Statement:
    """Compiled SQL plus its positional arguments."""

    sql: str
    args: tuple[Any, ...] = ()

    def __str__(self) -> str:
        return self.sql


# =============================================================================
# PLACEHOLDER BINDING
# =============================================================================


def _split_quoted(sql: str) -> list[tuple[bool, str]]:
    """Split into (is_quoted, chunk) pieces on ``'...'`` and ``"..."``."""
    pieces: list[tuple[bool, str]] = []
    buf: list[str] = []
    quote: str | None = None
    i = 0
    while i < len(sql):
        ch = sql[i]
        if quote is None:
            if ch in ("'", '"'):
                if buf:
                    pieces.append((False, "".join(buf)))
                buf = [ch]
                quote = ch
            else:
                buf.append(ch)
        else:
            buf.append(ch)
            if ch == quote:
                # Doubled quote is an escaped quote inside the literal
                if i + 1 < len(sql) and sql[i + 1] == quote:
                    buf.append(quote)
                    i += 1
                else:
                    pieces.append((True, "".join(buf)))
                    buf = []
                    quote = None
        i += 1
    if buf:
        pieces.append((quote is not None, "".join(buf)))
    return pieces


def bind(sql: str, dialect: Dialect) -> str:
    """Rewrite neutral ``?`` markers into ``dialect`` placeholders."""
    if dialect.paramstyle == "qmark":
        return sql
    out: list[str] = []
    index = 0
    for quoted, chunk in _split_quoted(sql):
        chunk = chunk.replace("%", "%%")
        if quoted:
            out.append(chunk)
            continue
        parts = chunk.split("?")
        rendered = [parts[0]]
        for part in parts[1:]:
            rendered.append(dialect.placeholder(index))
            rendered.append(part)
            index += 1
        out.append("".join(rendered))
    return "".join(out)


def named_to_positional(sql: str, params: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Turn ``:name`` parameters into ``?`` markers plus an argument list.

    ``::type`` casts and quoted text are left alone.

    Raises:
        QueryError: a referenced name is missing from ``params``
    """
    args: list[Any] = []

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in params:
            raise QueryError(f"missing value for named parameter :{name}").with_context(sql=sql)
        args.append(params[name])
        return "?"

    out = []
    for quoted, chunk in _split_quoted(sql):
        out.append(chunk if quoted else _NAMED_RE.sub(_replace, chunk))
    return "".join(out), args


# =============================================================================
# CLAUSE HELPERS
# =============================================================================


def _fragment(item: str | Raw, args: list[Any]) -> str:
    if isinstance(item, Raw):
        args.extend(item.args)
        return item.text
    return item


def _condition(cond: Condition | None, args: list[Any]) -> str:
    if cond is None:
        return ""
    text, cond_args = cond.render()
    args.extend(cond_args)
    return text


def order_term(item: str | Raw, args: list[Any]) -> str:
    """``"-title"`` -> ``"title DESC"``; ``"+title"`` -> ``"title ASC"``."""
    if isinstance(item, Raw):
        return _fragment(item, args)
    item = item.strip()
    if item.startswith("-"):
        return f"{item[1:].strip()} DESC"
    if item.startswith("+"):
        return f"{item[1:].strip()} ASC"
    return item


def _from_clause(sel: Selector, args: list[Any]) -> str:
    if not sel.sources:
        raise QueryError("SELECT needs at least one table (use from_())")
    sql = " FROM " + ", ".join(sel.sources)
    for join in sel.joins:
        sql += f" {join.kind} JOIN {join.table}"
        if join.on is not None:
            sql += " ON " + _condition(join.on, args)
        elif join.using:
            sql += f" USING ({', '.join(join.using)})"
    return sql


def _filter_clauses(sel: Selector, args: list[Any]) -> str:
    sql = ""
    where = _condition(sel.where_clause, args)
    if where:
        sql += f" WHERE {where}"
    if sel.groups:
        sql += " GROUP BY " + ", ".join(_fragment(g, args) for g in sel.groups)
    having = _condition(sel.having_clause, args)
    if having:
        sql += f" HAVING {having}"
    return sql


def _projection(sel: Selector, args: list[Any]) -> str:
    cols = ", ".join(_fragment(c, args) for c in sel.selected) or "*"
    return f"SELECT DISTINCT {cols}" if sel.unique else f"SELECT {cols}"


# =============================================================================
# STATEMENT COMPILERS
# =============================================================================


def compile_select(sel: Selector, dialect: Dialect) -> Statement:
    args: list[Any] = []
    sql = _projection(sel, args)
    sql += _from_clause(sel, args)
    sql += _filter_clauses(sel, args)
    if sel.order:
        sql += " ORDER BY " + ", ".join(order_term(o, args) for o in sel.order)
    window = dialect.limit_offset(sel.row_limit, sel.row_offset)
    if window:
        sql += f" {window}"
    return Statement(bind(sql, dialect), tuple(args))


def compile_count(sel: Selector, dialect: Dialect) -> Statement:
    """``COUNT(*)`` over the same sources and predicates.

    Ordering, limit and offset are dropped.  Grouped or DISTINCT queries are
    counted through a derived table that keeps the projection, so HAVING may
    refer to projected aliases.
    """
    args: list[Any] = []
    if sel.groups or sel.unique:
        inner = _projection(sel, args) if sel.selected or sel.unique else "SELECT 1"
        inner += _from_clause(sel, args) + _filter_clauses(sel, args)
        sql = f"SELECT COUNT(*) AS total FROM ({inner}) AS rowspine_count"
    else:
        sql = "SELECT COUNT(*) AS total" + _from_clause(sel, args) + _filter_clauses(sel, args)
    return Statement(bind(sql, dialect), tuple(args))


def compile_exists(sel: Selector, dialect: Dialect) -> Statement:
    args: list[Any] = []
    sql = _projection(sel, args) if sel.groups and sel.selected else "SELECT 1"
    sql += _from_clause(sel, args) + _filter_clauses(sel, args)
    sql += f" {dialect.limit_offset(1, None)}"
    return Statement(bind(sql, dialect), tuple(args))


def compile_insert(ins: Inserter, dialect: Dialect) -> Statement:
    if not ins.table:
        raise QueryError("INSERT needs a table (use into())")
    if not ins.rows:
        raise QueryError("INSERT needs at least one row (use values())").with_context(target=ins.table)
    args: list[Any] = []
    if not ins.cols:
        if len(ins.rows) > 1:
            raise QueryError("multi-row INSERT needs explicit columns").with_context(target=ins.table)
        sql = f"INSERT INTO {ins.table} DEFAULT VALUES"
    else:
        groups = []
        for row in ins.rows:
            if len(row) != len(ins.cols):
                raise QueryError(
                    f"INSERT row has {len(row)} values for {len(ins.cols)} columns"
                ).with_context(target=ins.table)
            groups.append("(" + ", ".join(_value(v, args) for v in row) + ")")
        sql = f"INSERT INTO {ins.table} ({', '.join(ins.cols)}) VALUES {', '.join(groups)}"
    if ins.returned:
        if not dialect.returning:
            raise QueryError(f"{dialect.name} does not support INSERT ... RETURNING")
        sql += " RETURNING " + ", ".join(ins.returned)
    return Statement(bind(sql, dialect), tuple(args))


def _value(value: Any, args: list[Any]) -> str:
    if isinstance(value, Raw):
        return _fragment(value, args)
    args.append(value)
    return "?"


def compile_update(upd: Updater, dialect: Dialect) -> Statement:
    if not upd.table:
        raise QueryError("UPDATE needs a table")
    if not upd.assignments:
        raise QueryError("UPDATE needs at least one assignment (use set())").with_context(target=upd.table)
    args: list[Any] = []
    sets = []
    for item in upd.assignments:
        if isinstance(item, Raw):
            sets.append(_fragment(item, args))
        else:
            column, value = item
            sets.append(f"{column} = {_value(value, args)}")
    sql = f"UPDATE {upd.table} SET {', '.join(sets)}"
    where = _condition(upd.where_clause, args)
    if where:
        sql += f" WHERE {where}"
    return Statement(bind(sql, dialect), tuple(args))


def compile_delete(dele: Deleter, dialect: Dialect) -> Statement:
    if not dele.table:
        raise QueryError("DELETE needs a table")
    args: list[Any] = []
    sql = f"DELETE FROM {dele.table}"
    where = _condition(dele.where_clause, args)
    if where:
        sql += f" WHERE {where}"
    return Statement(bind(sql, dialect), tuple(args))


def raw_statement(sql: str, args: Sequence[Any], dialect: Dialect) -> Statement:
    """Bind a caller-written statement (``?`` or one ``:name`` mapping)."""
    if len(args) == 1 and isinstance(args[0], Mapping):
        sql, positional = named_to_positional(sql, args[0])
        return Statement(bind(sql, dialect), tuple(positional))
    return Statement(bind(sql, dialect), tuple(args))


__all__ = [
    "Statement",
    "bind",
    "compile_count",
    "compile_delete",
    "compile_exists",
    "compile_insert",
    "compile_select",
    "compile_update",
    "named_to_positional",
    "order_term",
    "raw_statement",
]
