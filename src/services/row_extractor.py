"""Spreadsheet decoding for bulk order uploads.

ExcelRowExtractor reads the first worksheet of an .xlsx workbook with
openpyxl and turns each non-blank data row into a RawRow. Row 1 holds the
headers; header names are trimmed and matched case-sensitively against the
template columns. Structural problems raise a RowExtractionError subclass,
each of which converts to the matching BulkUploadError.
"""

import logging
import os
from io import BytesIO
from typing import Any

from openpyxl import load_workbook

from src.errors import BulkUploadError
from src.services.bulk_types import RawRow

logger = logging.getLogger(__name__)

REQUIRED_HEADERS: tuple[str, ...] = ("senderName", "receiverName")
DEFAULT_MAX_ROWS = 500
DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024


class RowExtractionError(Exception):
    """Base class for files that cannot be turned into rows.

    Attributes:
        code: Registry code describing the failure.
        context: Template values for the registry message.
    """

    code = "E-1005"

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.context = context

    def to_upload_error(self) -> BulkUploadError:
        """Convert to the BulkUploadError reported to the uploader."""
        return BulkUploadError.from_code(self.code, **self.context)


class ExcelParseError(RowExtractionError):
    """The content is not a readable .xlsx workbook."""

    code = "E-1005"

    def __init__(self, file_name: str, reason: str) -> None:
        super().__init__(
            f"Could not read {file_name!r}: {reason}", file_name=file_name, reason=reason
        )


class MissingHeadersError(RowExtractionError):
    """One or more required header columns are absent."""

    code = "E-1004"

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            f"Missing required headers: {', '.join(missing)}", headers=", ".join(missing)
        )


class FileSizeExceededError(RowExtractionError):
    """The upload exceeds the configured byte limit."""

    code = "E-1006"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"File is {size} bytes (limit {limit})", size=size, limit=limit)


class RowLimitExceededError(RowExtractionError):
    """The upload holds more data rows than allowed."""

    code = "E-1007"

    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"File has {count} rows (limit {limit})", count=count, limit=limit)


def _env_int(name: str, default: int) -> int:
    """Read a positive integer from the environment with safe fallback."""
    raw = os.environ.get(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, defaulting to %d", name, raw, default)
        return default
    return value if value > 0 else default


class ExcelRowExtractor:
    """Extracts RawRows from .xlsx content."""

    def __init__(self, max_rows: int | None = None, max_file_bytes: int | None = None) -> None:
        """Initialize the extractor.

        Args:
            max_rows: Data row limit; defaults to BULK_MAX_ROWS env var.
            max_file_bytes: Byte limit; defaults to BULK_MAX_FILE_BYTES env var.
        """
        self.max_rows = max_rows or _env_int("BULK_MAX_ROWS", DEFAULT_MAX_ROWS)
        self.max_file_bytes = max_file_bytes or _env_int(
            "BULK_MAX_FILE_BYTES", DEFAULT_MAX_FILE_BYTES
        )

    def extract(self, content: bytes, file_name: str = "upload.xlsx") -> list[RawRow]:
        """Decode workbook bytes into rows.

        Args:
            content: Raw .xlsx bytes.
            file_name: Name used in error messages.

        Returns:
            Non-blank data rows in sheet order. row_index is the sheet row
            number minus the header row.

        Raises:
            FileSizeExceededError: Content larger than max_file_bytes.
            ExcelParseError: Content is not a readable workbook.
            MissingHeadersError: A required header is missing.
            RowLimitExceededError: More than max_rows data rows.
        """
        if len(content) > self.max_file_bytes:
            raise FileSizeExceededError(len(content), self.max_file_bytes)
        if not content:
            raise ExcelParseError(file_name, "file is empty")

        try:
            workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            raise ExcelParseError(file_name, str(e) or type(e).__name__) from e

        try:
            if not workbook.worksheets:
                raise ExcelParseError(file_name, "workbook has no sheets")
            sheet = workbook.worksheets[0]
            rows_iter = sheet.iter_rows(values_only=True)

            header_row = next(rows_iter, None) or ()
            columns = self._map_headers(header_row)

            rows: list[RawRow] = []
            # Sheet row 1 is the header, so data row N sits on sheet row N + 1
            for sheet_row, values in enumerate(rows_iter, start=2):
                mapping = {
                    header: values[position]
                    for position, header in columns.items()
                    if position < len(values)
                }
                raw = RawRow.from_mapping(sheet_row - 1, mapping)
                if not raw.is_blank():
                    rows.append(raw)
        except RowExtractionError:
            raise
        except Exception as e:
            # Read-only sheets parse their XML lazily during iteration
            raise ExcelParseError(file_name, str(e) or type(e).__name__) from e
        finally:
            workbook.close()

        if len(rows) > self.max_rows:
            raise RowLimitExceededError(len(rows), self.max_rows)

        logger.info("Extracted %d rows from %s", len(rows), file_name)
        return rows

    @staticmethod
    def _map_headers(header_row: tuple[Any, ...]) -> dict[int, str]:
        """Map column positions to trimmed header names; first occurrence wins."""
        columns: dict[int, str] = {}
        seen: set[str] = set()
        for position, cell in enumerate(header_row):
            if cell is None:
                continue
            name = str(cell).strip()
            if not name or name in seen:
                continue
            seen.add(name)
            columns[position] = name

        missing = [h for h in REQUIRED_HEADERS if h not in seen]
        if missing:
            raise MissingHeadersError(missing)
        return columns
