"""
rowspine: a small data-access layer over SQLite, PostgreSQL and SQLAlchemy.

Immutable query builders, lazy cursors, dataclass record mapping with
inline composition for joins, pagination and function-scoped transactions.

Quick start::

    from dataclasses import dataclass
    import rowspine
    from rowspine import column

    @dataclass
    class Book:
        __collection__ = "books"
        id: int = column("id,omitempty", default=0)
        title: str = ""
        author_id: int | None = None

    sess = rowspine.open("sqlite:///books.db")
    books = sess.collection("books").find().order_by("title")
    for book in books.and_("title LIKE", "P%").all(Book):
        print(book.title)
"""

from rowspine.core.connection import ConnectionSettings
from rowspine.core.errors import (
    CancelledError,
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    DeadlineExceededError,
    IntegrityError,
    MappingError,
    NoMoreRowsError,
    NotFoundError,
    QueryError,
    ScopeError,
    SessionClosedError,
    SpineError,
    TransactionError,
)
from rowspine.core.logging import configure_logging, get_logger
from rowspine.core.settings import DatabaseSettings
from rowspine.db import (
    And,
    Collection,
    Comparison,
    Cond,
    Context,
    Cursor,
    ExecResult,
    Mapper,
    Or,
    Paginator,
    Raw,
    Result,
    Selector,
    Session,
    TransactionScope,
    column,
    open,
)

__version__ = "0.1.0"

__all__ = [
    "And",
    "CancelledError",
    "Collection",
    "Comparison",
    "Cond",
    "ConfigError",
    "ConnectionSettings",
    "Context",
    "Cursor",
    "DatabaseConnectionError",
    "DatabaseError",
    "DatabaseSettings",
    "DeadlineExceededError",
    "ExecResult",
    "IntegrityError",
    "Mapper",
    "MappingError",
    "NoMoreRowsError",
    "NotFoundError",
    "Or",
    "Paginator",
    "QueryError",
    "Raw",
    "Result",
    "ScopeError",
    "Selector",
    "Session",
    "SessionClosedError",
    "SpineError",
    "TransactionError",
    "TransactionScope",
    "__version__",
    "column",
    "configure_logging",
    "get_logger",
    "open",
]
