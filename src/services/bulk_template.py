"""Downloadable .xlsx template for bulk order uploads."""

from datetime import UTC, datetime
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from src.services.bulk_types import TEMPLATE_HEADERS
from src.services.row_extractor import REQUIRED_HEADERS

ORDERS_SHEET = "Orders"
INSTRUCTIONS_SHEET = "Instructions"

EXAMPLE_ROW: tuple[str, ...] = (
    "REF-12345", "1001", "ACME Corp", "ACME Corporation Ltd",
    "9876543210", "John Sender", "123 Main St, Mumbai", "9876543210",
    "john@example.com", "Jane Receiver", "456 Park Ave, Delhi", "9876543211",
    "jane@example.com", "110001", "Delhi", "Delhi",
    "2", "5.5", "30", "20",
    "10", "Electronics - Laptop", "50000", "express",
    "BlueDart", "BD001", "0", "Handle with care",
)

INSTRUCTION_LINES: tuple[str, ...] = (
    "BULK ORDER UPLOAD - INSTRUCTIONS",
    "",
    "Required headers:",
    f"  • {', '.join(REQUIRED_HEADERS)}",
    "",
    "Required values on every row:",
    "  • senderName, senderAddress, senderContact",
    "  • receiverName, receiverAddress, receiverContact",
    "  • itemCount (whole number, at least 1), totalWeight (greater than 0, at most 999.99)",
    "",
    "Validation rules:",
    "  • serviceType must be: express, standard, or economy",
    "  • receiverPincode must be exactly 6 digits",
    "  • lengthCm, widthCm, heightCm must be between 0.1 and 999.9",
    "  • declaredValue at most 100000, codAmount at most 50000, neither negative",
    "  • email columns must be valid email addresses",
    "",
    "Duplicates:",
    "  • Rows with a clientReference are matched on that reference.",
    "  • Rows without one are matched on sender, receiver, items, weight,",
    "    description and declared value. Re-uploading a file skips rows",
    "    that already created an order.",
    "",
    "Note: Column names are case-sensitive. Do not modify the header row.",
)

_HEADER_FONT = Font(bold=True)
_HEADER_FILL = PatternFill(start_color="D9D9D9", end_color="D9D9D9", fill_type="solid")


def template_filename(now: datetime | None = None) -> str:
    """Return the download name, e.g. bulk-orders-template-20250101-120000.xlsx."""
    now = now or datetime.now(UTC)
    return f"bulk-orders-template-{now.strftime('%Y%m%d-%H%M%S')}.xlsx"


def build_template_workbook() -> bytes:
    """Build the upload template.

    Returns:
        .xlsx bytes with an "Orders" sheet (styled header row for every
        template column plus one example row) and an "Instructions" sheet.
    """
    workbook = Workbook()
    orders = workbook.active
    orders.title = ORDERS_SHEET

    orders.append(list(TEMPLATE_HEADERS))
    for cell in orders[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
    orders.append(list(EXAMPLE_ROW))

    for position, header in enumerate(TEMPLATE_HEADERS, start=1):
        orders.column_dimensions[get_column_letter(position)].width = max(14, len(header) + 4)
    orders.freeze_panes = "A2"

    notes = workbook.create_sheet(INSTRUCTIONS_SHEET)
    for line in INSTRUCTION_LINES:
        notes.append([line])
    notes["A1"].font = _HEADER_FONT
    notes.column_dimensions["A"].width = 90

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
