"""Test helper utilities for building upload rows and workbooks."""

from tests.helpers.bulk_rows import (
    VALID_ROW,
    build_orders_workbook,
    build_workbook,
    make_row,
    truncate_sheet_xml,
)

__all__ = [
    "VALID_ROW",
    "build_orders_workbook",
    "build_workbook",
    "make_row",
    "truncate_sheet_xml",
]
