"""Service layer for FleetOps bulk order ingestion.

Provides the row pipeline (validation, idempotency, exactly-once order
creation), the batch coordinator, spreadsheet extraction and the upload
service used by the API and CLI.
"""

from src.services.batch_coordinator import (
    VALID_TRANSITIONS,
    BatchCoordinator,
    InvalidBatchTransition,
)
from src.services.bulk_upload_service import BulkUploadService
from src.services.idempotency import resolve_idempotency_key
from src.services.order_creator import OrderCreator
from src.services.order_repository import OrderPersistenceError, SqlOrderRepository
from src.services.row_extractor import ExcelRowExtractor, RowExtractionError
from src.services.row_processor import RowProcessor
from src.services.row_validator import validate_row

__all__ = [
    "BatchCoordinator",
    "BulkUploadService",
    "ExcelRowExtractor",
    "InvalidBatchTransition",
    "OrderCreator",
    "OrderPersistenceError",
    "RowExtractionError",
    "RowProcessor",
    "SqlOrderRepository",
    "VALID_TRANSITIONS",
    "resolve_idempotency_key",
    "validate_row",
]
