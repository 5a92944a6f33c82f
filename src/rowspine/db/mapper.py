"""Declarative record <-> row mapping.

Records are dataclasses.  Each field maps to the column named by its
``column()`` tag, or to its attribute name when untagged::

    @dataclass
    class Book:
        __collection__ = "books"

        id: int = column("id,omitempty", default=0)
        title: str = column("title", default="")
        author_id: int | None = column("author_id", default=None)
        notes: str = column("-", default="")          # never read or written

Tag grammar: ``name[,option[,option...]]`` with options ``omitempty``
(skip empty values on write) and ``inline`` (flatten a nested record's
columns into this one).  ``-`` as the whole tag ignores the field.

The per-type :class:`FieldMap` is built once and cached.  Inline fields
contribute their own flattened columns, which lets one composite record
receive a whole join row::

    @dataclass
    class BookAuthor:
        book: Book = column(",inline")
        author: Author = column(",inline")

Both ``Book`` and ``Author`` declare ``id``, so ``id`` is **ambiguous**:
decode never assigns it, and a required field behind it raises
:class:`~rowspine.core.errors.MappingError`.  Alias the column in the
projection (``authors.id AS author_id``) to disambiguate.
"""

from __future__ import annotations

import dataclasses
import threading
import types
import typing
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from rowspine.core.errors import MappingError

_MISSING = dataclasses.MISSING


def column(tag: str = "", **kwargs: Any) -> Any:
    """Declare a mapped dataclass field.

    Keyword arguments (``default``, ``default_factory``, ``repr``...) are
    forwarded to :func:`dataclasses.field`.
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata["db"] = tag
    return dataclasses.field(metadata=metadata, **kwargs)


def parse_tag(tag: str) -> tuple[str, frozenset[str]]:
    """Split ``"id,omitempty"`` into ``("id", {"omitempty"})``."""
    tag = tag.strip()
    if tag == "-":
        return "", frozenset({"-"})
    name, *options = [part.strip() for part in tag.split(",")]
    return name, frozenset(o for o in options if o)


def is_empty(value: Any) -> bool:
    """Zero value check used by ``omitempty``."""
    if value is None:
        return True
    if isinstance(value, (bool, int, float, Decimal)):
        return value == 0
    if isinstance(value, (str, bytes, bytearray, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


# =============================================================================
# FIELD DESCRIPTORS
# =============================================================================


@dataclasses.dataclass(frozen=True)
class FieldInfo:
    """One mapped field.

    ``path`` is the attribute path from the root record; it has more than
    one element for columns reached through inline fields.
    """

    name: str
    column: str
    path: tuple[str, ...]
    annotation: Any = Any
    target: Any = Any
    nullable: bool = True
    omitempty: bool = False
    ignored: bool = False
    required: bool = False
    inline: FieldMap | None = None
    # column sits under an Optional inline field
    optional_parent: bool = False


@dataclasses.dataclass(frozen=True)
class FieldMap:
    """Field-descriptor table for one record type."""

    record_type: type
    entries: tuple[FieldInfo, ...]
    columns: tuple[FieldInfo, ...]
    index: Mapping[str, FieldInfo]
    ambiguous: frozenset[str]

    def column_names(self) -> list[str]:
        return [info.column for info in self.columns]

    def lookup(self, column: str) -> FieldInfo:
        if column in self.ambiguous:
            raise MappingError(
                f"column {column!r} is ambiguous in {self.record_type.__name__}; "
                "alias it in the projection"
            ).with_context(target=self.record_type.__name__)
        try:
            return self.index[column]
        except KeyError:
            raise MappingError(
                f"{self.record_type.__name__} has no field mapped to column {column!r}",
                field=column,
            ) from None


def _unwrap_optional(hint: Any) -> tuple[Any, bool]:
    """``int | None`` -> ``(int, True)``; ``Any`` is nullable."""
    if hint is Any:
        return Any, True
    origin = typing.get_origin(hint)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        nullable = len(args) < len(typing.get_args(hint))
        if len(args) == 1:
            return args[0], nullable
        return Any, nullable
    return hint, False


# =============================================================================
# TYPE COERCION
# =============================================================================


def _to_int(value: Any) -> int:
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value!r} is not integral")
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    return int(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, (int, Decimal)):
        return bool(value)
    if isinstance(value, str) and value.lower() in ("0", "1", "true", "false", "t", "f"):
        return value.lower() in ("1", "true", "t")
    raise ValueError(f"{value!r} is not a boolean")


def _to_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode()
    raise ValueError(f"{type(value).__name__} is not text")


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode()
    raise ValueError(f"{type(value).__name__} is not binary")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("bool is not a decimal")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{value!r} is not a decimal") from e


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise ValueError(f"{value!r} is not a datetime")


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return datetime.fromisoformat(value).date()
    raise ValueError(f"{value!r} is not a date")


_COERCERS = {
    int: _to_int,
    float: float,
    bool: _to_bool,
    str: _to_str,
    bytes: _to_bytes,
    Decimal: _to_decimal,
    datetime: _to_datetime,
    date: _to_date,
}


def _already(value: Any, target: type) -> bool:
    if not isinstance(value, target):
        return False
    # bool is an int and datetime is a date, but neither is what the field wants
    if target is int and isinstance(value, bool):
        return False
    if target is date and isinstance(value, datetime):
        return False
    return True


def _null_error(info: FieldInfo, path: Sequence[str]) -> MappingError:
    return MappingError(
        f"NULL in non-nullable field {'.'.join(path)!r} (declare it Optional)",
        field=info.column,
    )


def coerce(info: FieldInfo, value: Any) -> Any:
    """Convert a column value to the field's declared type."""
    if value is None:
        if info.nullable:
            return None
        raise _null_error(info, info.path)
    target = info.target
    if target is Any or not isinstance(target, type):
        # Generic aliases (list[str], dict[str, Any]) are taken as-is
        return value
    if _already(value, target):
        return value
    converter = _COERCERS.get(target, target)
    try:
        return converter(value)
    except (TypeError, ValueError, ArithmeticError) as e:
        raise MappingError(
            f"cannot convert {type(value).__name__} to {target.__name__} "
            f"for field {'.'.join(info.path)!r}",
            field=info.column,
            value=value,
            cause=e,
        ) from e


# =============================================================================
# MAPPER
# =============================================================================


class Mapper:
    """Builds, caches and applies :class:`FieldMap` tables.

    Thread-safe; one process-wide instance (:data:`default_mapper`) is shared
    by every session.
    """

    def __init__(self) -> None:
        self._maps: dict[type, FieldMap] = {}
        self._building: set[type] = set()
        self._lock = threading.RLock()

    def register(self, *record_types: type) -> None:
        """Build field maps eagerly (e.g. at import time)."""
        for record_type in record_types:
            self.field_map(record_type)

    def field_map(self, record_type: type) -> FieldMap:
        fmap = self._maps.get(record_type)
        if fmap is not None:
            return fmap
        with self._lock:
            fmap = self._maps.get(record_type)
            if fmap is None:
                fmap = self._build(record_type)
                self._maps[record_type] = fmap
            return fmap

    def _build(self, record_type: type) -> FieldMap:
        name = getattr(record_type, "__name__", repr(record_type))
        if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
            raise MappingError(f"{name} is not a dataclass record type").with_context(target=name)
        if record_type in self._building:
            raise MappingError(f"{name} inlines itself").with_context(target=name)
        try:
            hints = typing.get_type_hints(record_type)
        except NameError as e:
            raise MappingError(
                f"cannot resolve type hints of {name}: {e}", cause=e
            ).with_context(target=name) from e

        self._building.add(record_type)
        try:
            entries: list[FieldInfo] = []
            for f in dataclasses.fields(record_type):
                if not f.init:
                    continue
                entries.append(self._describe(record_type, f, hints.get(f.name, Any)))
        finally:
            self._building.discard(record_type)

        columns: list[FieldInfo] = []
        for entry in entries:
            if entry.ignored:
                continue
            if entry.inline is not None:
                columns.extend(
                    dataclasses.replace(
                        leaf,
                        path=(entry.name,) + leaf.path,
                        optional_parent=leaf.optional_parent or entry.nullable,
                    )
                    for leaf in entry.inline.columns
                )
            else:
                columns.append(entry)

        counts: dict[str, int] = {}
        for info in columns:
            counts[info.column] = counts.get(info.column, 0) + 1
        ambiguous = frozenset(col for col, n in counts.items() if n > 1)
        index = {info.column: info for info in columns if info.column not in ambiguous}

        return FieldMap(
            record_type=record_type,
            entries=tuple(entries),
            columns=tuple(columns),
            index=types.MappingProxyType(index),
            ambiguous=ambiguous,
        )

    def _describe(self, owner: type, f: dataclasses.Field, hint: Any) -> FieldInfo:
        name, options = parse_tag(f.metadata.get("db", ""))
        required = f.default is _MISSING and f.default_factory is _MISSING
        target, nullable = _unwrap_optional(hint)
        if "-" in options:
            return FieldInfo(name=f.name, column="", path=(f.name,), ignored=True, required=required)
        if "inline" in options:
            if not (isinstance(target, type) and dataclasses.is_dataclass(target)):
                raise MappingError(
                    f"inline field {owner.__name__}.{f.name} must be a dataclass"
                ).with_context(target=owner.__name__)
            return FieldInfo(
                name=f.name,
                column=name,
                path=(f.name,),
                annotation=hint,
                target=target,
                nullable=nullable,
                required=required,
                inline=self.field_map(target),
            )
        return FieldInfo(
            name=f.name,
            column=name or f.name,
            path=(f.name,),
            annotation=hint,
            target=target,
            nullable=nullable,
            omitempty="omitempty" in options,
            required=required,
        )

    # -- Encode ------------------------------------------------------------

    def encode(self, record: Any) -> list[tuple[str, Any]]:
        """Ordered ``(column, value)`` pairs for a write.

        Mappings pass through unchanged.
        """
        if isinstance(record, Mapping):
            return list(record.items())
        fmap = self.field_map(type(record))
        pairs: list[tuple[str, Any]] = []
        seen: set[str] = set()
        for info in fmap.columns:
            if info.optional_parent:
                # an absent Optional inline record writes NULL for its columns
                value = get_path(record, info.path, missing=None)
            else:
                value = get_path(record, info.path)
            if info.omitempty and is_empty(value):
                continue
            if info.column in seen:
                raise MappingError(
                    f"column {info.column!r} is written by more than one field of "
                    f"{fmap.record_type.__name__}",
                    field=info.column,
                )
            seen.add(info.column)
            pairs.append((info.column, value))
        return pairs

    # -- Decode ------------------------------------------------------------

    def decode(self, record_type: Any, columns: Sequence[str], row: Sequence[Any]) -> Any:
        """Build ``record_type`` from one row.

        ``record_type=dict`` returns ``{column: value}``.
        """
        if record_type is dict:
            return dict(zip(columns, row))
        fmap = self.field_map(record_type)
        values: dict[tuple[str, ...], Any] = {}
        seen: set[str] = set()
        for col, value in zip(columns, row):
            if col in fmap.ambiguous:
                continue
            info = fmap.index.get(col)
            if info is None:
                continue
            if col in seen:
                raise MappingError(
                    f"row carries column {col!r} more than once; alias one of them",
                    field=col,
                ).with_context(target=fmap.record_type.__name__)
            seen.add(col)
            if value is None and info.optional_parent:
                # checked in _construct once the inline record is known to be present
                values[info.path] = None
            else:
                values[info.path] = coerce(info, value)
        return self._construct(fmap, fmap, values, ())

    def _construct(
        self,
        root: FieldMap,
        fmap: FieldMap,
        values: dict[tuple[str, ...], Any],
        prefix: tuple[str, ...],
    ) -> Any:
        kwargs: dict[str, Any] = {}
        for info in fmap.entries:
            path = prefix + (info.name,)
            if info.ignored:
                if info.required:
                    raise MappingError(
                        f"ignored field {'.'.join(path)!r} needs a default"
                    ).with_context(target=root.record_type.__name__)
                continue
            if info.inline is not None:
                if info.nullable:
                    present = [v for p, v in values.items() if p[: len(path)] == path]
                    if not any(v is not None for v in present):
                        if present or info.required:
                            kwargs[info.name] = None
                        continue
                kwargs[info.name] = self._construct(root, info.inline, values, path)
            elif path in values:
                value = values[path]
                if value is None and not info.nullable:
                    raise _null_error(info, path)
                kwargs[info.name] = value
            elif info.required:
                if info.column in root.ambiguous:
                    message = (
                        f"column {info.column!r} is ambiguous in {root.record_type.__name__} "
                        f"(needed by {'.'.join(path)!r}); alias it in the projection"
                    )
                else:
                    message = f"missing column {info.column!r} for field {'.'.join(path)!r}"
                raise MappingError(message, field=info.column).with_context(
                    target=root.record_type.__name__
                )
        try:
            return fmap.record_type(**kwargs)
        except (TypeError, ValueError) as e:
            raise MappingError(
                f"cannot build {fmap.record_type.__name__}: {e}",
                cause=e,
            ).with_context(target=root.record_type.__name__) from e

    # -- Field access ------------------------------------------------------

    def get_field(self, record: Any, column: str) -> Any:
        if isinstance(record, Mapping):
            return record.get(column)
        info = self.field_map(type(record)).lookup(column)
        return get_path(record, info.path)

    def set_field(self, record: Any, column: str, value: Any) -> None:
        """Assign a column value (coerced to the field type) on ``record``."""
        if isinstance(record, dict):
            record[column] = value
            return
        info = self.field_map(type(record)).lookup(column)
        target = get_path(record, info.path[:-1])
        setattr(target, info.path[-1], coerce(info, value))

    def primary_key_value(self, record: Any, pk_columns: Sequence[str]) -> tuple[Any, ...]:
        return tuple(self.get_field(record, col) for col in pk_columns)


_RAISE = object()


def get_path(record: Any, path: Sequence[str], missing: Any = _RAISE) -> Any:
    """Follow ``path`` from ``record``; a ``None`` hop yields ``missing`` when given."""
    for attr in path:
        if record is None and missing is not _RAISE:
            return missing
        record = getattr(record, attr)
    return record


default_mapper = Mapper()


__all__ = [
    "FieldInfo",
    "FieldMap",
    "Mapper",
    "coerce",
    "column",
    "default_mapper",
    "get_path",
    "is_empty",
    "parse_tag",
]
