"""Data-access engine: sessions, collections, query builders, cursors."""

from rowspine.db.base import ExecResult
from rowspine.db.collection import Collection
from rowspine.db.compiler import Statement
from rowspine.db.context import Context
from rowspine.db.cursor import Cursor, CursorState
from rowspine.db.expr import And, Comparison, Cond, Condition, Or, Raw
from rowspine.db.mapper import FieldMap, Mapper, column, default_mapper
from rowspine.db.paginator import Paginator
from rowspine.db.query import Deleter, Inserter, Result, Selector, Updater
from rowspine.db.session import Session, open
from rowspine.db.transaction import ScopeState, TransactionScope

__all__ = [
    "And",
    "Collection",
    "Comparison",
    "Cond",
    "Condition",
    "Context",
    "Cursor",
    "CursorState",
    "Deleter",
    "ExecResult",
    "FieldMap",
    "Inserter",
    "Mapper",
    "Or",
    "Paginator",
    "Raw",
    "Result",
    "ScopeState",
    "Selector",
    "Session",
    "Statement",
    "TransactionScope",
    "Updater",
    "column",
    "default_mapper",
    "open",
]
