"""OrderTrack CLI.

Commands:
- init: Initialize database schema
- import: Import an order export (CSV/XLSX) and reconcile it
- set-status: Change an order's status (Finished/Done archives it)
- archive: Archive orders by number
- restore: Move archived orders back to the active partition
- reinstate: Bring a Removed order back as Open
- sweep: Archive terminal orders still in the active partition
- archived: List archived orders
- runs: Show recent import runs
- progress: Update a process's progress
- serve: Run the web API
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ordertrack.config import get_config
from ordertrack.core.logging import configure_logging
from ordertrack.db.connection import close_db, get_session, get_session_factory, init_db
from ordertrack.db.run_log import fetch_recent_runs
from ordertrack.ingestion.mapping import ColumnMappingError
from ordertrack.ingestion.parser import CSVParseError
from ordertrack.lifecycle.archive import BulkTransferResult
from ordertrack.lifecycle.processes import update_progress
from ordertrack.lifecycle.status import InvalidStatusError, InvalidTransitionError
from ordertrack.services import build_services

app = typer.Typer(
    name="ordertrack",
    help="OrderTrack - Work order import, reconciliation and archival",
    no_args_is_help=True,
)

console = Console()


def _services():
    return build_services(get_session_factory())


def _run(coro):
    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    return asyncio.run(_wrapped())


def _print_transfer(result: BulkTransferResult, verb: str) -> None:
    table = Table(title=f"{verb} results")
    table.add_column("Order", style="cyan")
    table.add_column("Outcome", style="bold")
    table.add_column("Processes", justify="right")
    table.add_column("Message")

    for outcome in result.outcomes:
        style = "green" if outcome.ok else "red"
        table.add_row(
            outcome.order_number,
            f"[{style}]{outcome.status.value}[/{style}]",
            str(outcome.process_count),
            outcome.message,
        )
    console.print(table)


@app.callback()
def main_callback(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    configure_logging(log_level)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")
    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="import")
def import_cmd(
    file: Path = typer.Argument(..., help="Order export (CSV/XLSX)"),
    auto_detect_removed: bool | None = typer.Option(
        None,
        "--auto-remove/--no-auto-remove",
        help="Mark active orders missing from the file as Removed",
    ),
    mapping_file: Path | None = typer.Option(
        None, "--mapping", help="JSON file of source header -> logical field"
    ),
    show_warnings: bool = typer.Option(False, "--warnings", help="Print validation warnings"),
):
    """Import an order export and reconcile it against stored orders."""
    column_mapping = None
    if mapping_file is not None:
        column_mapping = json.loads(mapping_file.read_text())

    console.print(f"[bold]Importing orders:[/bold] {file}")

    async def _import():
        services = _services()
        orchestrator = services.orchestrator(
            column_mapping=column_mapping, auto_detect_removed=auto_detect_removed
        )
        return await orchestrator.run_file(
            file, max_file_size_mb=services.config.imports.max_file_size_mb
        )

    try:
        result = _run(_import())
    except (CSVParseError, ColumnMappingError, FileNotFoundError) as e:
        console.print(f"[red]✗ Import failed: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Import Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for key, value in result.to_dict().items():
        if key != "errorMessages":
            table.add_row(key, str(value))
    console.print(table)

    if result.error_messages:
        console.print(f"\n[yellow]⚠[/yellow] {result.errors} errors")
        for message in result.error_messages[:20]:
            console.print(f"  {message}", style="dim")

    if show_warnings and result.warnings:
        console.print(f"\n[yellow]{len(result.warnings)} warnings[/yellow]")
        for warning in result.warnings:
            console.print(f"  {warning}", style="dim")

    console.print(f"\nCompleted in {result.duration_seconds:.1f}s ({result.status.value})")
    if not result.success:
        raise typer.Exit(1)


@app.command(name="set-status")
def set_status_cmd(
    order_number: str = typer.Argument(..., help="Order number"),
    status: str = typer.Argument(..., help="New status"),
):
    """Change an order's status; Finished/Done moves it to the archive."""

    async def _set():
        return await _services().controller.set_status(order_number, status)

    try:
        result = _run(_set())
    except (InvalidStatusError, InvalidTransitionError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    if result.success:
        console.print(f"[green]✓[/green] {result.message}")
    else:
        console.print(f"[red]✗ {result.message}[/red]")
        raise typer.Exit(1)


@app.command()
def archive(
    order_numbers: list[str] = typer.Argument(..., help="Orders to archive"),
    status: str | None = typer.Option(
        None, "--status", help="Terminal status to store (Finished or Done)"
    ),
):
    """Archive orders with their processes."""

    async def _archive():
        return await _services().archive_manager.archive_many(order_numbers, final_status=status)

    try:
        result = _run(_archive())
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    _print_transfer(result, "Archive")
    if result.failed:
        raise typer.Exit(1)


@app.command()
def restore(
    order_numbers: list[str] = typer.Argument(..., help="Orders to restore"),
):
    """Move archived orders and their processes back to active."""

    async def _restore():
        return await _services().archive_manager.restore_many(order_numbers)

    result = _run(_restore())
    _print_transfer(result, "Restore")
    if result.failed:
        raise typer.Exit(1)


@app.command()
def reinstate(
    order_number: str = typer.Argument(..., help="Removed order to reopen"),
):
    """Bring a Removed order back as Open."""

    async def _reinstate():
        return await _services().controller.reinstate(order_number)

    try:
        result = _run(_reinstate())
    except InvalidTransitionError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    if not result.success:
        console.print(f"[red]✗ {result.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {result.message}")


@app.command()
def sweep():
    """Archive Finished/Done orders still in the active partition."""

    async def _sweep():
        return await _services().archive_manager.sweep_terminal()

    result = _run(_sweep())
    if not result.outcomes:
        console.print("[green]No terminal orders left in the active partition[/green]")
        return
    _print_transfer(result, "Sweep")


@app.command()
def archived(
    since: datetime | None = typer.Option(None, "--since", help="Archived on/after"),
    until: datetime | None = typer.Option(None, "--until", help="Archived on/before"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows"),
):
    """List archived orders, most recent first."""

    async def _list():
        return await _services().archive_manager.list_archived(
            since=since, until=until, limit=limit
        )

    orders = _run(_list())
    if not orders:
        console.print("[yellow]No archived orders found[/yellow]")
        return

    table = Table(title=f"Archived Orders ({len(orders)})")
    table.add_column("Order", style="cyan")
    table.add_column("Description")
    table.add_column("Qty", justify="right")
    table.add_column("Status", style="bold")
    table.add_column("Archived")

    for order in orders:
        table.add_row(
            order.order_number,
            order.description,
            str(order.quantity),
            order.status,
            order.archived_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command()
def runs(
    last_n: int = typer.Option(10, "--last", "-n", help="Show last N import runs"),
):
    """Show recent import runs."""

    async def _runs():
        async with get_session() as session:
            return await fetch_recent_runs(session, limit=last_n)

    logs = _run(_runs())
    if not logs:
        console.print("[yellow]No import runs found[/yellow]")
        return

    table = Table(title=f"Last {len(logs)} Import Runs")
    table.add_column("When", style="cyan")
    table.add_column("Source")
    table.add_column("Status", style="bold")
    for column in ("Total", "Created", "Updated", "Archived", "Removed", "Errors"):
        table.add_column(column, justify="right")

    for log in logs:
        status_style = {"SUCCESS": "green", "FAILED": "red"}.get(log.status, "yellow")
        table.add_row(
            log.run_timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            log.source_name,
            f"[{status_style}]{log.status}[/{status_style}]",
            str(log.total),
            str(log.created),
            str(log.updated),
            str(log.archived),
            str(log.removed + log.auto_removed),
            str(log.errors),
        )
    console.print(table)


@app.command()
def progress(
    process_id: str = typer.Argument(..., help="Process id, e.g. WO-1001-step-2"),
    value: int = typer.Argument(..., help="Progress 0-100"),
    force: bool = typer.Option(False, "--force", help="Allow progress to decrease"),
):
    """Update a process's progress."""

    async def _progress():
        return await update_progress(
            _services().processes, process_id, value, allow_regression=force
        )

    try:
        process = _run(_progress())
    except (LookupError, ValueError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] {process.process_id}: {process.progress}% ({process.status})"
    )


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI order API."""
    import uvicorn

    typer.echo(f"Starting OrderTrack API on http://{host}:{port}")
    uvicorn.run("ordertrack.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
