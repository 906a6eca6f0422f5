"""Tests for spreadsheet decoding."""

import pytest

from src.services.bulk_types import TEMPLATE_HEADERS, cell_to_text
from src.services.row_extractor import (
    ExcelParseError,
    ExcelRowExtractor,
    FileSizeExceededError,
    MissingHeadersError,
    RowLimitExceededError,
)
from tests.helpers.bulk_rows import (
    build_orders_workbook,
    build_workbook,
    make_row,
    truncate_sheet_xml,
)


@pytest.fixture
def extractor() -> ExcelRowExtractor:
    return ExcelRowExtractor(max_rows=5, max_file_bytes=512 * 1024)


class TestExtract:
    """Happy-path decoding."""

    def test_rows_in_sheet_order(self, extractor):
        content = build_orders_workbook(
            [make_row(1, client_reference="A"), make_row(2, client_reference="B")]
        )
        rows = extractor.extract(content, "orders.xlsx")
        assert [r.row_index for r in rows] == [1, 2]
        assert [r.client_reference for r in rows] == ["A", "B"]
        assert rows[0].receiver_name == "Jane Receiver"

    def test_blank_rows_are_skipped_but_keep_numbering(self, extractor):
        content = build_workbook(
            [
                [None] * len(TEMPLATE_HEADERS),
                ["REF-9", None, None, None, None, "Sender"],
            ]
        )
        rows = extractor.extract(content)
        assert len(rows) == 1
        assert rows[0].row_index == 2
        assert rows[0].sender_name == "Sender"

    def test_numeric_cells_become_text(self, extractor):
        content = build_workbook(
            [[110001.0, 2, 5.5, "Jane"]],
            headers=["receiverPincode", "itemCount", "totalWeight", "receiverName", "senderName"],
        )
        row = extractor.extract(content)[0]
        assert row.receiver_pincode == "110001"
        assert row.item_count == "2"
        assert row.total_weight == "5.5"

    def test_headers_are_trimmed_and_unknown_ignored(self, extractor):
        content = build_workbook(
            [["S", "R", "x"]],
            headers=["  senderName ", "receiverName", "notAColumn"],
        )
        row = extractor.extract(content)[0]
        assert row.sender_name == "S"
        assert row.receiver_name == "R"

    def test_first_duplicate_header_wins(self, extractor):
        content = build_workbook(
            [["first", "R", "second"]],
            headers=["senderName", "receiverName", "senderName"],
        )
        assert extractor.extract(content)[0].sender_name == "first"

    def test_header_only_sheet_gives_no_rows(self, extractor):
        assert extractor.extract(build_workbook([])) == []


class TestStructuralErrors:
    """Files that cannot become rows."""

    def test_not_a_workbook(self, extractor):
        with pytest.raises(ExcelParseError) as exc_info:
            extractor.extract(b"plain text, not a zip", "orders.csv")
        error = exc_info.value.to_upload_error()
        assert error.code == "E-1005"
        assert "orders.csv" in error.message

    def test_empty_content(self, extractor):
        with pytest.raises(ExcelParseError):
            extractor.extract(b"")

    def test_corrupt_sheet_xml(self, extractor):
        """Malformed sheet XML surfaces while rows are read."""
        content = truncate_sheet_xml(build_orders_workbook([make_row(1), make_row(2)]))
        with pytest.raises(ExcelParseError) as exc_info:
            extractor.extract(content, "orders.xlsx")
        assert exc_info.value.to_upload_error().code == "E-1005"

    def test_missing_required_headers(self, extractor):
        content = build_workbook([["x"]], headers=["clientReference"])
        with pytest.raises(MissingHeadersError) as exc_info:
            extractor.extract(content)
        assert exc_info.value.missing == ["senderName", "receiverName"]
        error = exc_info.value.to_upload_error()
        assert error.code == "E-1004"
        assert error.message == "Missing required headers: senderName, receiverName."

    def test_headers_are_case_sensitive(self, extractor):
        content = build_workbook([["S", "R"]], headers=["SenderName", "receiverName"])
        with pytest.raises(MissingHeadersError):
            extractor.extract(content)

    def test_file_too_large(self):
        extractor = ExcelRowExtractor(max_rows=5, max_file_bytes=10)
        with pytest.raises(FileSizeExceededError) as exc_info:
            extractor.extract(b"x" * 11)
        assert exc_info.value.to_upload_error().code == "E-1006"

    def test_too_many_rows(self, extractor):
        content = build_orders_workbook([make_row(i) for i in range(1, 7)])
        with pytest.raises(RowLimitExceededError) as exc_info:
            extractor.extract(content)
        error = exc_info.value.to_upload_error()
        assert error.code == "E-1007"
        assert error.message == "Upload contains 6 order rows; the limit is 5."


class TestLimitsFromEnvironment:
    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("BULK_MAX_ROWS", "12")
        monkeypatch.setenv("BULK_MAX_FILE_BYTES", "2048")
        extractor = ExcelRowExtractor()
        assert extractor.max_rows == 12
        assert extractor.max_file_bytes == 2048

    def test_invalid_env_falls_back(self, monkeypatch):
        monkeypatch.setenv("BULK_MAX_ROWS", "lots")
        assert ExcelRowExtractor().max_rows == 500


class TestCellToText:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            ("abc", "abc"),
            (3.0, "3"),
            (3.25, "3.25"),
            (7, "7"),
            (True, "true"),
        ],
    )
    def test_conversion(self, value, expected):
        assert cell_to_text(value) == expected
