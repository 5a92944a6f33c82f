"""
CLI utility helpers: output formatting and session management.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

import rowspine
from rowspine.core.errors import SpineError
from rowspine.db.session import Session

console = Console()
err_console = Console(stderr=True)


# ── Session helper ───────────────────────────────────────────────────────


@contextmanager
def open_session(url: str | None) -> Iterator[Session]:
    """Open a session for one command; errors exit with status 1.

    ``url`` of ``None`` reads ``ROWSPINE_URL`` from the environment.
    """
    try:
        with rowspine.open(url) as sess:
            yield sess
    except SpineError as e:
        fail(e)


def fail(error: SpineError) -> None:
    """Print a rowspine error and exit non-zero."""
    err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {escape(error.message)}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_rows(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render rows as a Rich table, or a dim notice when there are none."""
    if not rows:
        console.print("[dim]No rows.[/dim]")
        return
    _print_table(rows, title=title)


def _print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("NULL" if v is None else escape(str(v)) for v in row.values()))
    console.print(table)
