"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.api.schemas import BatchDetailResponse, BatchSummaryResponse, BulkUploadResponse
from src.db.models import BulkUploadBatch
from src.errors import BulkUploadError, format_error, format_error_summary, get_error
from src.services.bulk_types import BatchResult

console = Console()

# Status color map for batch and row statuses
STATUS_COLORS = {
    "PROCESSING": "blue",
    "COMPLETED": "green",
    "FAILED": "red",
    "CREATED": "green",
    "SKIPPED_DUPLICATE": "yellow",
    "FAILED_VALIDATION": "red",
}


def _colored(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _render(renderable: object) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def collect_row_errors(result: BatchResult) -> list[BulkUploadError]:
    """Turn every field error in a result into a BulkUploadError for grouping.

    Args:
        result: Processed batch.

    Returns:
        One error per (row, field error), carrying the row number and column.
    """
    errors: list[BulkUploadError] = []
    for outcome in result.rows:
        for field_error in outcome.errors:
            error_def = get_error(field_error.code)
            errors.append(
                BulkUploadError(
                    code=field_error.code,
                    message=field_error.message,
                    remediation=error_def.remediation if error_def else "Contact support.",
                    rows=[outcome.row_index],
                    column=field_error.field,
                    is_retryable=error_def.is_retryable if error_def else False,
                )
            )
    return errors


def format_batch_result(result: BatchResult, as_json: bool = False) -> str:
    """Format an ingestion result as a Rich panel and table, or JSON.

    Args:
        result: Processed batch.
        as_json: If True, return the API response shape as JSON.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(
            BulkUploadResponse.from_result(result).model_dump(by_alias=True), indent=2
        )

    lines = [
        f"[bold]Batch ID:[/bold]   {result.batch_id}",
        f"[bold]Status:[/bold]     {_colored(result.status.value)}",
        f"[bold]Rows:[/bold]       {result.total_rows}",
        f"[bold]Created:[/bold]    [green]{result.created}[/green]",
        f"[bold]Duplicates:[/bold] [yellow]{result.skipped_duplicate}[/yellow]",
        f"[bold]Failed:[/bold]     [red]{result.failed}[/red]",
        f"[bold]Duration:[/bold]   {result.processing_duration_ms} ms",
    ]
    output = _render(Panel("\n".join(lines), title="Bulk Upload", border_style="cyan"))

    table = Table(title="Rows", show_lines=False)
    table.add_column("Row", justify="right", style="cyan")
    table.add_column("Status")
    table.add_column("Basis")
    table.add_column("Order ID")
    for outcome in result.rows:
        table.add_row(
            str(outcome.row_index),
            _colored(outcome.status.value),
            outcome.idempotency_basis.value if outcome.idempotency_basis else "—",
            outcome.order_id or "—",
        )
    output += _render(table)

    errors = collect_row_errors(result)
    if errors:
        output += "\n" + format_error_summary(errors) + "\n"
    return output


def format_batch_table(batches: list[BulkUploadBatch], as_json: bool = False) -> str:
    """Format a list of batches as a Rich table or JSON.

    Args:
        batches: Stored batches, newest first.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(
            [BatchSummaryResponse.model_validate(b).model_dump(by_alias=True) for b in batches],
            indent=2,
        )

    if not batches:
        return "No batches found."

    table = Table(title="Upload Batches", show_lines=True)
    table.add_column("Batch ID", style="cyan", no_wrap=True)
    table.add_column("File")
    table.add_column("Uploader")
    table.add_column("Status")
    table.add_column("Rows", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Dup", justify="right", style="yellow")
    table.add_column("Fail", justify="right", style="red")
    table.add_column("Uploaded")

    for batch in batches:
        table.add_row(
            batch.batch_id,
            batch.file_name,
            batch.uploader,
            _colored(batch.status),
            str(batch.total_rows),
            str(batch.created_count),
            str(batch.skipped_duplicate_count),
            str(batch.failed_count),
            batch.uploaded_at[:19] if batch.uploaded_at else "—",
        )
    return _render(table)


def format_batch_detail(batch: BulkUploadBatch, as_json: bool = False) -> str:
    """Format one stored batch with its rows as a Rich panel or JSON."""
    if as_json:
        return json.dumps(
            BatchDetailResponse.model_validate(batch).model_dump(by_alias=True), indent=2
        )

    lines = [
        f"[bold]Batch ID:[/bold]  {batch.batch_id}",
        f"[bold]File:[/bold]      {batch.file_name} ({batch.file_size_bytes} bytes)",
        f"[bold]Checksum:[/bold]  {batch.file_checksum}",
        f"[bold]Uploader:[/bold]  {batch.uploader}",
        f"[bold]Status:[/bold]    {_colored(batch.status)}",
        "",
        f"[bold]Rows:[/bold]      {batch.total_rows}",
        f"[bold]Created:[/bold]   [green]{batch.created_count}[/green]",
        f"[bold]Skipped:[/bold]   [yellow]{batch.skipped_duplicate_count}[/yellow]",
        f"[bold]Failed:[/bold]    [red]{batch.failed_count}[/red]",
        "",
        f"[bold]Uploaded:[/bold]  {batch.uploaded_at[:19] if batch.uploaded_at else '—'}",
        f"[bold]Completed:[/bold] {batch.completed_at[:19] if batch.completed_at else '—'}",
    ]
    if batch.error_code:
        lines.append("")
        lines.append(f"[bold red]Error:[/bold red] {batch.error_code}: {batch.error_message}")
    output = _render(Panel("\n".join(lines), title="Batch Detail", border_style="cyan"))

    if batch.rows:
        table = Table(title="Rows")
        table.add_column("Row", justify="right", style="cyan")
        table.add_column("Status")
        table.add_column("Order ID")
        table.add_column("Errors")
        for row in batch.rows:
            messages = json.loads(row.error_messages) if row.error_messages else []
            table.add_row(
                str(row.row_index),
                _colored(row.status),
                row.order_id or "—",
                "; ".join(m["message"] for m in messages) or "—",
            )
        output += _render(table)
    return output


def format_upload_error(error: BulkUploadError) -> str:
    """Format a structural upload failure for the terminal."""
    text = format_error(error)
    batch_id = error.details.get("batch_id") if error.details else None
    if batch_id:
        text += f"\n  Batch: {batch_id}"
    return text
