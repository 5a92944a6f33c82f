"""
CLI: ``rowspine collections|count|query``, read-only database inspection.
"""

from __future__ import annotations

import typer

from rowspine.cli.utils import console, open_session, print_json, print_rows

URL_ARG = typer.Argument(..., help="Connection URL or SQLite path.")


def list_collections(
    url: str = URL_ARG,
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List tables in the database."""
    with open_session(url) as sess:
        names = sess.collections()

    if as_json:
        print_json(names)
        return
    if not names:
        console.print("[dim]No collections.[/dim]")
        return
    for name in names:
        console.print(name)


def count_rows(
    url: str = URL_ARG,
    table: str = typer.Argument(..., help="Table to count."),
    where: str | None = typer.Option(None, "--where", "-w", help="Raw SQL condition"),
) -> None:
    """Count the rows of a table, optionally filtered."""
    with open_session(url) as sess:
        coll = sess.collection(table)
        total = (coll.find(where) if where else coll.find()).count()
    console.print(total)


def run_query(
    url: str = URL_ARG,
    sql: str = typer.Argument(..., help="Statement with ? placeholders."),
    args: list[str] | None = typer.Argument(None, help="Positional arguments."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Run a query and print its rows."""
    with open_session(url) as sess:
        rows = sess.query(sql, *(args or [])).all(dict)

    if as_json:
        print_json(rows)
        return
    print_rows(rows)
