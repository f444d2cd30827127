"""
CLI utility helpers — output formatting and error reporting.
"""

from __future__ import annotations

from typing import Any, NoReturn

import typer
from bson import json_util
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mongo_spine.core.errors import MongoSpineError

err_console = Console(stderr=True)


def emit_record(record: dict[str, Any]) -> None:
    """Print one flat record as a JSON line on stdout."""
    typer.echo(
        json_util.dumps(record, json_options=json_util.RELAXED_JSON_OPTIONS, sort_keys=True)
    )


def print_metrics(metrics: dict[str, int], *, title: str = "Import summary") -> None:
    """Render counters as a two-column table on stderr."""
    table = Table(title=title, show_header=False, pad_edge=False)
    table.add_column("counter", style="bold")
    table.add_column("value", justify="right")
    for key, value in metrics.items():
        table.add_row(key, str(value))
    err_console.print(table)


def fail(error: MongoSpineError) -> NoReturn:
    """Report a typed error and exit with status 1."""
    err_console.print(
        f"[bold red]Error[/bold red] ({error.category.value}): {escape(error.message)}"
    )
    context = error.context.to_dict()
    query = context.get("query")
    if query:
        err_console.print(f"[dim]query: {escape(query)}[/dim]")
    raise typer.Exit(code=1)
