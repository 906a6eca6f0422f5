"""Tests for bulk order API routes."""

from io import BytesIO

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from tests.helpers.bulk_rows import build_workbook

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _upload(client: TestClient, content: bytes, uploader: str | None = "ops-1", name="orders.xlsx"):
    headers = {"X-Uploader-Id": uploader} if uploader else {}
    return client.post(
        "/api/v1/bulk/orders",
        files={"file": (name, content, XLSX)},
        headers=headers,
    )


class TestUpload:
    """POST /api/v1/bulk/orders"""

    def test_upload_returns_row_outcomes(self, client: TestClient, orders_xlsx: bytes):
        resp = _upload(client, orders_xlsx)
        assert resp.status_code == 200
        data = resp.json()

        assert data["batchId"].startswith("BU")
        assert data["totalRows"] == 3
        assert (data["created"], data["failed"], data["skippedDuplicate"]) == (2, 1, 0)
        assert isinstance(data["processingDurationMs"], int)

        rows = data["rows"]
        assert [r["rowIndex"] for r in rows] == [1, 2, 3]
        assert rows[0]["status"] == "CREATED"
        assert rows[0]["idempotencyBasis"] == "CLIENT_REFERENCE"
        assert rows[0]["orderId"]
        assert rows[0]["errorMessages"] is None
        assert rows[2]["status"] == "FAILED_VALIDATION"
        assert rows[2]["orderId"] is None
        assert rows[2]["errorMessages"][0] == {
            "code": "E-1001",
            "field": "receiverName",
            "message": "Required field 'receiverName' is missing in row 3.",
        }

    def test_second_upload_skips_duplicates(self, client: TestClient, orders_xlsx: bytes):
        first = _upload(client, orders_xlsx).json()
        second = _upload(client, orders_xlsx).json()

        assert second["batchId"] != first["batchId"]
        assert second["skippedDuplicate"] == 2
        assert second["created"] == 0
        assert second["rows"][0]["orderId"] == first["rows"][0]["orderId"]

    def test_uploader_header_scopes_keys(self, client: TestClient, orders_xlsx: bytes):
        _upload(client, orders_xlsx, uploader="ops-1")
        other = _upload(client, orders_xlsx, uploader="ops-2").json()
        assert other["created"] == 2

    def test_unreadable_file_is_400(self, client: TestClient):
        resp = _upload(client, b"definitely not a workbook")
        assert resp.status_code == 400
        data = resp.json()
        assert data["error_code"] == "E-1005"
        assert data["remediation"]
        assert data["details"]["batch_id"].startswith("BU")

    def test_missing_headers_is_400(self, client: TestClient):
        resp = _upload(client, build_workbook([["x"]], headers=["clientReference"]))
        assert resp.status_code == 400
        assert resp.json()["error_code"] == "E-1004"

    def test_missing_file_is_422(self, client: TestClient):
        resp = client.post("/api/v1/bulk/orders")
        assert resp.status_code == 422


class TestBatches:
    """GET /api/v1/bulk/orders/batches"""

    def test_list_batches(self, client: TestClient, orders_xlsx: bytes):
        uploaded = _upload(client, orders_xlsx).json()
        resp = client.get("/api/v1/bulk/orders/batches")
        assert resp.status_code == 200
        data = resp.json()

        assert data["total"] == 1
        assert data["limit"] == 20
        batch = data["batches"][0]
        assert batch["batchId"] == uploaded["batchId"]
        assert batch["status"] == "COMPLETED"
        assert batch["uploader"] == "ops-1"
        assert batch["createdCount"] == 2
        assert batch["failedCount"] == 1
        assert batch["fileName"] == "orders.xlsx"

    def test_status_filter_is_case_insensitive(self, client: TestClient, orders_xlsx: bytes):
        _upload(client, orders_xlsx)
        _upload(client, b"junk")
        data = client.get("/api/v1/bulk/orders/batches?status=failed").json()
        assert data["total"] == 1
        assert data["batches"][0]["errorCode"] == "E-1005"

    def test_limit_out_of_range(self, client: TestClient):
        assert client.get("/api/v1/bulk/orders/batches?limit=0").status_code == 422
        assert client.get("/api/v1/bulk/orders/batches?limit=201").status_code == 422

    def test_batch_detail(self, client: TestClient, orders_xlsx: bytes):
        uploaded = _upload(client, orders_xlsx).json()
        resp = client.get(f"/api/v1/bulk/orders/batches/{uploaded['batchId']}")
        assert resp.status_code == 200
        data = resp.json()

        assert data["totalRows"] == 3
        assert [r["rowIndex"] for r in data["rows"]] == [1, 2, 3]
        assert data["rows"][0]["idempotencyKey"] == "REF-001"
        assert data["rows"][2]["errorMessages"][0]["code"] == "E-1001"

    def test_unknown_batch_is_404(self, client: TestClient):
        resp = client.get("/api/v1/bulk/orders/batches/BU-none")
        assert resp.status_code == 404
        assert "not found" in resp.json()["detail"]


class TestTemplate:
    """GET /api/v1/bulk/orders/template"""

    def test_download_template(self, client: TestClient):
        resp = client.get("/api/v1/bulk/orders/template")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == XLSX
        disposition = resp.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="bulk-orders-template-')
        assert disposition.endswith('.xlsx"')

        workbook = load_workbook(BytesIO(resp.content))
        assert workbook.sheetnames == ["Orders", "Instructions"]


class TestHealth:
    def test_health(self, client: TestClient):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["uptime_seconds"] >= 0
        assert "version" in data

    def test_api_root(self, client: TestClient):
        assert client.get("/api").json()["docs"] == "/docs"
