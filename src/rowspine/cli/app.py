"""
Root Typer application for the rowspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="rowspine",
    help="rowspine: inspect databases through the rowspine data-access layer.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("rowspine")
        except PackageNotFoundError:
            from rowspine import __version__ as v
        typer.echo(f"rowspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for rowspine's structured logs."),
) -> None:
    """rowspine CLI: list collections, count rows and run queries."""
    from rowspine.core.logging import configure_logging

    configure_logging(level=log_level, json_format=False)


# ── Sub-command registration ─────────────────────────────────────────────

from rowspine.cli.config import app as config_app  # noqa: E402
from rowspine.cli.db import count_rows, list_collections, run_query  # noqa: E402

app.command("collections")(list_collections)
app.command("count")(count_rows)
app.command("query")(run_query)
app.add_typer(config_app, name="config", help="Configuration inspection.")
