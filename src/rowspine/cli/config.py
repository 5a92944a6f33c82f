"""
CLI: ``rowspine config``: inspect environment-driven settings.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError
from rich.markup import escape

from rowspine.cli.utils import console, err_console

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json, env"),
) -> None:
    """Show the settings ``rowspine.open()`` would use with no URL."""
    from rowspine.core.settings import DatabaseSettings

    try:
        settings = DatabaseSettings()
    except ValidationError as e:
        err_console.print(f"[bold red]Error[/bold red] (configuration): {escape(str(e))}")
        raise typer.Exit(code=1) from e

    if format == "json":
        console.print_json(settings.model_dump_json())
        return

    if format == "env":
        for key, value in settings.model_dump().items():
            typer.echo(f"ROWSPINE_{key.upper()}={value}")
        return

    from rich.table import Table

    table = Table()
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value))
    table.add_row("connection", repr(settings.to_connection_settings()))
    console.print(table)
