"""Pytest fixtures for API tests.

Provides a test client whose bulk upload service is wired to the
per-test SQLite database from the root conftest.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routes.bulk_orders import get_bulk_upload_service
from src.services.bulk_upload_service import BulkUploadService
from tests.helpers.bulk_rows import build_orders_workbook, make_row


@pytest.fixture
def client(upload_service: BulkUploadService) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden service dependency.

    Args:
        upload_service: Service bound to the test database.

    Yields:
        TestClient configured for testing.
    """
    app.dependency_overrides[get_bulk_upload_service] = lambda: upload_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def orders_xlsx() -> bytes:
    """Workbook with two referenced rows and one invalid row."""
    return build_orders_workbook(
        [
            make_row(1, client_reference="REF-001"),
            make_row(2, client_reference="REF-002"),
            make_row(3, receiver_name=None),
        ]
    )
