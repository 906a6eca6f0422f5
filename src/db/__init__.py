"""Database module for bulk upload state and order persistence."""

from src.db.connection import (
    SessionLocal,
    build_engine,
    build_session_factory,
    engine,
    get_db,
    init_db,
)
from src.db.models import (
    BatchStatus,
    BulkUploadBatch,
    BulkUploadRow,
    IdempotencyBasis,
    Order,
    OrderStatus,
    RowStatus,
)

__all__ = [
    # Models
    "BulkUploadBatch",
    "BulkUploadRow",
    "Order",
    # Enums
    "BatchStatus",
    "RowStatus",
    "IdempotencyBasis",
    "OrderStatus",
    # Connection
    "engine",
    "SessionLocal",
    "build_engine",
    "build_session_factory",
    "get_db",
    "init_db",
]
