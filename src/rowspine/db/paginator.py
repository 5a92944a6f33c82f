"""Page-indexed view over an ordered query.

    pager = sess.collection("books").find().order_by("title").paginate(10)
    pager.total_pages()              # ceil(total_entries / 10)
    pager.page(3).all(Book)          # OFFSET 20 LIMIT 10

Pagination requires an ORDER BY: without one, page contents are undefined.
The base query must not carry its own limit() or offset().
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from rowspine.core.errors import QueryError

if TYPE_CHECKING:
    from rowspine.db.compiler import Statement
    from rowspine.db.context import Context
    from rowspine.db.cursor import Cursor
    from rowspine.db.query import Selector


class Paginator:
    """Immutable (query, page size, page number) triple; pages are 1-based."""

    def __init__(self, query: Selector, page_size: int, page: int = 1):
        if page_size < 1:
            raise QueryError(f"page size must be >= 1, got {page_size}")
        if page < 1:
            raise QueryError(f"pages are numbered from 1, got {page}")
        if not query.order:
            raise QueryError("pagination requires an ORDER BY (call order_by() first)")
        if query.row_limit is not None or query.row_offset:
            raise QueryError(
                "pagination sets LIMIT and OFFSET itself; drop limit()/offset() from the query"
            )
        self._query = query
        self._page_size = page_size
        self._page = page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def current_page(self) -> int:
        return self._page

    @property
    def query(self) -> Selector:
        return self._query

    def page(self, n: int) -> Paginator:
        return Paginator(self._query, self._page_size, n)

    def next_page(self) -> Paginator:
        return self.page(self._page + 1)

    def prev_page(self) -> Paginator:
        return self.page(max(1, self._page - 1))

    def window(self) -> Selector:
        """The base query restricted to the current page."""
        return self._query.limit(self._page_size).offset((self._page - 1) * self._page_size)

    def compile(self) -> Statement:
        return self.window().compile()

    def __str__(self) -> str:
        return self.compile().sql

    def all(
        self,
        record_type: Any = dict,
        into: list[Any] | None = None,
        ctx: Context | None = None,
    ) -> list[Any]:
        return self.window().all(record_type, into=into, ctx=ctx)

    def one(self, record_type: Any = dict, ctx: Context | None = None) -> Any:
        return self.window().one(record_type, ctx=ctx)

    def iterator(self, ctx: Context | None = None) -> Cursor:
        return self.window().iterator(ctx)

    def total_entries(self, ctx: Context | None = None) -> int:
        """Rows matched by the unpaginated query."""
        return self._query.count(ctx)

    def total_pages(self, ctx: Context | None = None) -> int:
        total = self.total_entries(ctx)
        if total == 0:
            return 0
        return math.ceil(total / self._page_size)

    def __repr__(self) -> str:
        return f"Paginator(page={self._page}, page_size={self._page_size})"


__all__ = ["Paginator"]
