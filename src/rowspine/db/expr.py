"""Condition model: typed WHERE / ON / HAVING predicates.

Conditions are immutable trees.  Leaves are either structured comparisons
(``Comparison``, ``Cond``) or opaque backend text (``Raw``) carrying its own
positional arguments.  Rendering produces neutral SQL with ``?`` markers
plus the argument list; values are always bound, never interpolated.

Examples:
    >>> Cond({"title LIKE": "P%", "author_id": 7}).render()
    ('title LIKE ? AND author_id = ?', ['P%', 7])
    >>> (Comparison("id", "IN", [1, 2]) | Raw("stock > ?", 0)).render()
    ('id IN (?, ?) OR (stock > ?)', [1, 2, 0])
    >>> Comparison("deleted_at", "=", None).render()
    ('deleted_at IS NULL', [])
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from rowspine.core.errors import QueryError

OPERATORS = frozenset({
    "=", "!=", "<>", "<", "<=", ">", ">=",
    "LIKE", "NOT LIKE", "ILIKE", "NOT ILIKE",
    "IN", "NOT IN", "IS", "IS NOT",
})

_KEY_RE = re.compile(
    r"^\s*(?P<column>.+?)\s*"
    r"(?P<op>!=|<>|<=|>=|=|<|>|\bNOT\s+I?LIKE\b|\bI?LIKE\b|\bNOT\s+IN\b|\bIN\b|\bIS\s+NOT\b|\bIS\b)?"
    r"\s*$",
    re.IGNORECASE,
)


def parse_key(key: str) -> tuple[str, str]:
    """Split ``"title LIKE"`` into ``("title", "LIKE")``; bare names mean ``=``."""
    match = _KEY_RE.match(key)
    if match is None:
        raise QueryError(f"invalid condition key: {key!r}")
    op = match.group("op") or "="
    return match.group("column"), " ".join(op.upper().split())


class Condition:
    """Base class of every predicate node."""

    def render(self) -> tuple[str, list[Any]]:
        raise NotImplementedError

    def __and__(self, other: Any) -> And:
        return And(self, other)

    def __or__(self, other: Any) -> Or:
        return Or(self, other)


@dataclass(frozen=True)
class Comparison(Condition):
    """``column op value``."""

    column: str
    op: str = "="
    value: Any = None

    def __post_init__(self) -> None:
        op = " ".join(self.op.upper().split())
        if op not in OPERATORS:
            raise QueryError(f"unsupported operator {self.op!r}").with_context(target=self.column)
        object.__setattr__(self, "op", op)

    def render(self) -> tuple[str, list[Any]]:
        col, op, value = self.column, self.op, self.value
        if value is None:
            if op in ("=", "IS"):
                return f"{col} IS NULL", []
            if op in ("!=", "<>", "IS NOT"):
                return f"{col} IS NOT NULL", []
        if isinstance(value, Raw):
            text, args = value.render()
            return f"{col} {op} {text}", args
        if op in ("IN", "NOT IN"):
            items = _as_list(value)
            if not items:
                # Empty IN matches nothing; empty NOT IN matches everything
                return ("1 = 0" if op == "IN" else "1 = 1"), []
            return f"{col} {op} ({', '.join('?' for _ in items)})", items
        return f"{col} {op} ?", [value]


@dataclass(frozen=True, init=False)
class Cond(Condition):
    """Conjunction of ``"column [op]": value`` pairs.

    ``Cond({"title LIKE": "P%"}, author_id=7)``
    """

    items: tuple[tuple[str, Any], ...]

    def __init__(self, mapping: Mapping[str, Any] | None = None, /, **kwargs: Any):
        pairs = list((mapping or {}).items()) + list(kwargs.items())
        object.__setattr__(self, "items", tuple(pairs))

    def comparisons(self) -> list[Comparison]:
        result = []
        for key, value in self.items:
            column, op = parse_key(key)
            result.append(Comparison(column, op, value))
        return result

    def render(self) -> tuple[str, list[Any]]:
        return And(*self.comparisons()).render()


@dataclass(frozen=True, init=False)
class Raw(Condition):
    """Backend text with ``?`` positional markers and their arguments."""

    text: str
    args: tuple[Any, ...]

    def __init__(self, text: str, *args: Any):
        object.__setattr__(self, "text", text)
        object.__setattr__(self, "args", tuple(args))

    def render(self) -> tuple[str, list[Any]]:
        return self.text, list(self.args)

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True, init=False)
class _Group(Condition):
    conditions: tuple[Condition, ...]

    joiner = "AND"

    def __init__(self, *conditions: Any):
        flat: list[Condition] = []
        for item in conditions:
            cond = to_condition(item)
            if cond is None:
                continue
            # And(And(a, b), c) is And(a, b, c)
            if type(cond) is type(self):
                flat.extend(cond.conditions)
            else:
                flat.append(cond)
        object.__setattr__(self, "conditions", tuple(flat))

    def render(self) -> tuple[str, list[Any]]:
        rendered = [(cond, *cond.render()) for cond in self.conditions]
        rendered = [item for item in rendered if item[1]]
        if len(rendered) == 1:
            return rendered[0][1], rendered[0][2]
        parts: list[str] = []
        args: list[Any] = []
        for cond, text, cond_args in rendered:
            parts.append(f"({text})" if _needs_parens(cond) else text)
            args.extend(cond_args)
        return f" {self.joiner} ".join(parts), args


class And(_Group):
    """All of the given conditions."""

    joiner = "AND"


class Or(_Group):
    """Any of the given conditions."""

    joiner = "OR"


def _needs_parens(cond: Condition) -> bool:
    if isinstance(cond, Comparison):
        return False
    if isinstance(cond, Cond):
        return len(cond.items) > 1
    return True


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return [value]
    return list(value)


def to_condition(*args: Any) -> Condition | None:
    """Normalise builder arguments into a condition.

    Accepted shapes::

        ()                          -> None
        (Condition, ...)            -> the condition (several are ANDed)
        ({"col op": value},)        -> Cond
        ("col op", value)           -> Comparison
        ("text with ?", *args)      -> Raw
        ("raw text",)               -> Raw
    """
    if not args:
        return None
    first = args[0]
    if len(args) == 1:
        if first is None:
            return None
        if isinstance(first, Condition):
            return first
        if isinstance(first, Mapping):
            return Cond(first)
        if isinstance(first, str):
            return Raw(first)
        raise QueryError(f"cannot build a condition from {first!r}")
    if all(isinstance(a, (Condition, Mapping)) for a in args):
        return And(*args)
    if isinstance(first, str):
        if "?" in first:
            return Raw(first, *args[1:])
        if len(args) == 2:
            column, op = parse_key(first)
            return Comparison(column, op, args[1])
    raise QueryError(f"cannot build a condition from {args!r}")


__all__ = [
    "OPERATORS",
    "And",
    "Comparison",
    "Cond",
    "Condition",
    "Or",
    "Raw",
    "parse_key",
    "to_condition",
]
