"""
Root Typer application for the mongo-spine CLI.

Commands:
    rewrite-dates   Rewrite local date literals in text to UTC instants
    flatten         Print flat records for documents stored in a JSON file
    import          Run an import phase against a live MongoDB
"""

from __future__ import annotations

from pathlib import Path

import typer
from bson import json_util
from bson.errors import BSONError
from typer import Typer

from mongo_spine.cli.utils import emit_record, err_console, fail, print_metrics
from mongo_spine.core.errors import MongoSpineError
from mongo_spine.core.logging import configure_logging
from mongo_spine.core.settings import MongoSourceSettings
from mongo_spine.core.temporal import rewrite_datetimes
from mongo_spine.framework.sources.context import (
    COLLECTION,
    DELTA_IMPORT_QUERY,
    DELTA_QUERY,
    QUERY,
    SimpleImportContext,
    SyncPhase,
)
from mongo_spine.framework.sources.controller import PhaseController, QueryMetrics
from mongo_spine.framework.sources.mongo import MongoDataSource
from mongo_spine.framework.sources.stream import to_flat_record

app = Typer(
    name="mongo-spine",
    help="mongo-spine — flatten MongoDB documents for indexing pipelines.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

PHASE_CHOICES = {
    "full": [SyncPhase.FULL_IMPORT],
    "delta-discovery": [SyncPhase.DELTA_DISCOVERY],
    "delta-import": [SyncPhase.DELTA_IMPORT],
    "delta": [SyncPhase.DELTA_DISCOVERY, SyncPhase.DELTA_IMPORT],
}


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from mongo_spine import __version__

        typer.echo(f"mongo-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON."),
) -> None:
    """mongo-spine CLI: date rewriting, flattening and phase imports."""
    configure_logging(level=log_level, json_format=json_logs)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("rewrite-dates")
def rewrite_dates(
    text: str = typer.Argument(..., help="Text containing local date-time literals"),
    offset: float = typer.Option(
        8.0, "--offset", min=-14, max=14, help="UTC offset of the literals, in hours"
    ),
) -> None:
    """Rewrite ``YYYY-MM-DD HH:MM:SS`` literals to UTC ``YYYY-MM-DDTHH:MM:SSZ``."""
    settings = MongoSourceSettings(source_utc_offset_hours=offset)
    result = rewrite_datetimes(text, settings.source_timezone)
    typer.echo(result.text)
    for issue in result.malformed:
        err_console.print(
            f"[yellow]warning[/yellow]: {issue.literal!r} is not a valid date, "
            f"rewritten as {issue.replacement!r}"
        )


@app.command("flatten")
def flatten(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Extended JSON file"),
    shallow: bool = typer.Option(False, "--shallow", help="Keep top-level keys only."),
) -> None:
    """Print the flat record of each document in a JSON file (object or array)."""
    try:
        loaded = json_util.loads(path.read_text(encoding="utf-8"))
    except (ValueError, TypeError, BSONError) as exc:
        err_console.print(f"[bold red]Invalid JSON:[/bold red] {exc}")
        raise typer.Exit(code=1)

    documents = loaded if isinstance(loaded, list) else [loaded]
    for document in documents:
        if not isinstance(document, dict):
            err_console.print("[bold red]Error:[/bold red] every item must be a JSON object")
            raise typer.Exit(code=1)
        emit_record(to_flat_record(document, flatten=not shallow))


@app.command("import")
def run_import(
    collection: str = typer.Option(..., "--collection", "-c", help="Collection to read"),
    phase: str = typer.Option(
        "full", "--phase", "-p", help="full | delta-discovery | delta-import | delta"
    ),
    query: str | None = typer.Option(None, "--query", "-q", help="Full-import filter"),
    delta_query: str | None = typer.Option(None, "--delta-query", help="Change discovery filter"),
    delta_import_query: str | None = typer.Option(
        None, "--delta-import-query", help="Filter per change marker, e.g. using ${delta._id}"
    ),
    var: list[str] = typer.Option([], "--var", help="Token variable NAME=VALUE (repeatable)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    host: str | None = typer.Option(None, "--host"),
    port: str | None = typer.Option(None, "--port"),
    shallow: bool = typer.Option(False, "--shallow", help="Keep top-level keys only."),
) -> None:
    """Run an import phase and print records (or change markers) as JSON lines."""
    phases = PHASE_CHOICES.get(phase)
    if phases is None:
        err_console.print(f"[bold red]Unknown phase:[/bold red] {phase}")
        raise typer.Exit(code=2)

    variables: dict[str, str] = {}
    for item in var:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            err_console.print(f"[bold red]Invalid --var:[/bold red] {item} (expected NAME=VALUE)")
            raise typer.Exit(code=2)
        variables[name.strip()] = value

    overrides = {
        key: value
        for key, value in {"database": database, "host": host, "port": port}.items()
        if value is not None
    }
    if shallow:
        overrides["map_mongo_fields"] = False
    settings = MongoSourceSettings().model_copy(update=overrides)

    attributes = {COLLECTION: collection}
    for name, value in ((QUERY, query), (DELTA_QUERY, delta_query), (DELTA_IMPORT_QUERY, delta_import_query)):
        if value is not None:
            attributes[name] = value
    context = SimpleImportContext(attributes=attributes, variables=variables)
    metrics = QueryMetrics()

    try:
        with MongoDataSource(settings) as source, PhaseController(
            context, source, metrics=metrics, source_tz=settings.source_timezone
        ) as controller:
            _run_phases(controller, context, phases)
    except MongoSpineError as exc:
        fail(exc)

    print_metrics(metrics.to_dict())


def _run_phases(
    controller: PhaseController,
    context: SimpleImportContext,
    phases: list[SyncPhase],
) -> None:
    if phases == [SyncPhase.DELTA_DISCOVERY, SyncPhase.DELTA_IMPORT]:
        context.current_phase = SyncPhase.DELTA_DISCOVERY
        markers = list(controller.modified_row_keys())
        context.current_phase = SyncPhase.DELTA_IMPORT
        for marker in markers:
            context.set_delta_marker(marker)
            for record in controller.rows():
                emit_record(record)
        return

    context.current_phase = phases[0]
    if phases[0] is SyncPhase.DELTA_DISCOVERY:
        for marker in controller.modified_row_keys():
            emit_record(marker)
    else:
        for record in controller.rows():
            emit_record(record)
