"""FleetOps bulk CLI: idempotent bulk order ingestion.

Usage:
    fleetops-bulk ingest orders.xlsx    Ingest a spreadsheet of orders
    fleetops-bulk template              Write the upload template
    fleetops-bulk batches               List upload batches
    fleetops-bulk batch BU2025...       Show one batch with its rows
    fleetops-bulk serve                 Run the HTTP API
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console

from src.cli.config import FleetOpsConfig, export_ingest_env, resolve_config
from src.cli.output import (
    format_batch_detail,
    format_batch_result,
    format_batch_table,
    format_upload_error,
)
from src.db.connection import SessionLocal, init_db
from src.errors import BulkUploadError, NotFoundError
from src.services.bulk_template import build_template_workbook, template_filename
from src.services.bulk_upload_service import BulkUploadService
from src.services.row_extractor import ExcelRowExtractor

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="fleetops-bulk",
    help="Idempotent bulk order ingestion from spreadsheets",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to fleetops.yaml config file"
    ),
):
    """FleetOps bulk order ingestion."""
    global _config_path
    _config_path = config


def _load() -> FleetOpsConfig:
    try:
        cfg = resolve_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    logging.basicConfig(level=cfg.server.log_level.upper())
    return cfg


def _build_service(cfg: FleetOpsConfig, concurrency: int | None = None) -> BulkUploadService:
    init_db()
    return BulkUploadService(
        SessionLocal,
        extractor=ExcelRowExtractor(
            max_rows=cfg.ingest.max_rows,
            max_file_bytes=cfg.ingest.max_file_bytes,
        ),
        concurrency=concurrency or cfg.ingest.concurrency,
        default_uploader=cfg.ingest.default_uploader,
    )


# --- Ingestion ---


@app.command()
def ingest(
    file: Path = typer.Argument(help="Order spreadsheet (.xlsx)"),
    uploader: Optional[str] = typer.Option(
        None, "--uploader", "-u", help="Uploader identity (idempotency scope)"
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c", min=1, help="Rows processed in parallel"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Ingest a spreadsheet of orders; rows already created are skipped."""
    if not file.exists():
        console.print(f"[red]File not found: {file}[/red]")
        raise typer.Exit(1)

    cfg = _load()
    service = _build_service(cfg, concurrency)

    async def _progress(event_type: str, **kwargs: Any) -> None:
        _log.debug("Progress [%s]: %s", event_type, kwargs)

    try:
        result = asyncio.run(
            service.process_upload(
                file.read_bytes(), file.name, uploader=uploader, on_progress=_progress
            )
        )
    except BulkUploadError as e:
        console.print(f"[red]{format_upload_error(e)}[/red]")
        raise typer.Exit(1)

    if json_output:
        typer.echo(format_batch_result(result, as_json=True))
    else:
        console.print(format_batch_result(result))


@app.command()
def template(
    output: Optional[Path] = typer.Argument(
        None, help="Output path (default: timestamped name in the current directory)"
    ),
):
    """Write the .xlsx upload template."""
    path = output or Path.cwd() / template_filename()
    path.write_bytes(build_template_workbook())
    console.print(f"[green]Template written to {path}[/green]")


# --- Batch history ---


@app.command()
def batches(
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=200, help="Batches to show"),
    uploader: Optional[str] = typer.Option(None, "--uploader", "-u", help="Filter by uploader"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List upload batches, newest first."""
    service = _build_service(_load())
    items, total = service.list_batches(
        limit=limit, uploader=uploader, status=status.upper() if status else None
    )
    if json_output:
        typer.echo(format_batch_table(items, as_json=True))
        return
    console.print(format_batch_table(items))
    if total > len(items):
        console.print(f"[dim]Showing {len(items)} of {total} batches.[/dim]")


@app.command()
def batch(
    batch_id: str = typer.Argument(help="Batch ID to inspect"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show one batch with its row outcomes."""
    service = _build_service(_load())
    try:
        detail = service.get_batch(batch_id)
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if json_output:
        typer.echo(format_batch_detail(detail, as_json=True))
    else:
        console.print(format_batch_detail(detail))


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    cfg = _load()
    export_ingest_env(cfg)
    bind_host = host or cfg.server.host
    bind_port = port or cfg.server.port
    _log.info("Starting API on %s:%d", bind_host, bind_port)
    uvicorn.run(
        "src.api.main:app",
        host=bind_host,
        port=bind_port,
        workers=1,
        log_level=cfg.server.log_level,
        lifespan="on",
    )


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration."""
    cfg = _load()

    console.print("[bold]Server:[/bold]")
    console.print(f"  host: {cfg.server.host}")
    console.print(f"  port: {cfg.server.port}")
    console.print(f"  log_level: {cfg.server.log_level}")

    console.print("\n[bold]Ingest:[/bold]")
    console.print(f"  concurrency: {cfg.ingest.concurrency}")
    console.print(f"  max_rows: {cfg.ingest.max_rows}")
    console.print(f"  max_file_bytes: {cfg.ingest.max_file_bytes}")
    console.print(f"  default_uploader: {cfg.ingest.default_uploader}")


# --- Version ---


@app.command()
def version():
    """Show fleetops-bulk version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version

    try:
        v = pkg_version("fleetops-bulk")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]fleetops-bulk[/bold] v{v}")


if __name__ == "__main__":
    app()
