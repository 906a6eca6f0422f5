"""SQLAlchemy ORM models for the bulk order ingestion database.

This module defines the persistent records for upload batches, their
per-row outcomes, and the orders the engine creates. Uses SQLAlchemy 2.0
style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class BatchStatus(str, Enum):
    """Status values for bulk upload batches.

    Lifecycle: open -> processing -> completed/failed
               open -> failed (no rows could be extracted)
    """

    open = "OPEN"
    processing = "PROCESSING"
    completed = "COMPLETED"
    failed = "FAILED"


class RowStatus(str, Enum):
    """Terminal outcome assigned to exactly one uploaded row."""

    created = "CREATED"
    skipped_duplicate = "SKIPPED_DUPLICATE"
    failed_validation = "FAILED_VALIDATION"


class IdempotencyBasis(str, Enum):
    """How a row's idempotency key was derived."""

    client_reference = "CLIENT_REFERENCE"
    hash = "HASH"


class OrderStatus(str, Enum):
    """Status values for orders created by bulk ingestion."""

    pending = "pending"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class BulkUploadBatch(Base):
    """One spreadsheet upload tracked as a single unit.

    Holds the aggregate counts the coordinator computes once every row has
    a terminal outcome. When status is COMPLETED,
    created_count + failed_count + skipped_duplicate_count == total_rows.

    Attributes:
        id: UUID primary key
        batch_id: Opaque public identifier (BU + timestamp + suffix)
        uploader: Uploader identity, also the idempotency scope
        file_name: Original file name as uploaded
        file_size_bytes: Size of the uploaded content
        file_checksum: SHA-256 hex digest of the uploaded content
        status: OPEN, PROCESSING, COMPLETED or FAILED
        total_rows: Number of data rows extracted from the file
        created_count: Rows that created a new order
        failed_count: Rows that failed validation or creation
        skipped_duplicate_count: Rows resolved to an existing order
        uploaded_at: ISO8601 timestamp when the batch was opened
        completed_at: ISO8601 timestamp when the batch reached a terminal state
        processing_duration_ms: completed_at - uploaded_at in milliseconds
        error_code: Error code if the batch failed (E-XXXX format)
        error_message: Human-readable error message if failed
    """

    __tablename__ = "bulk_upload_batches"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    batch_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    uploader: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size_bytes: Mapped[int] = mapped_column(default=0, nullable=False)
    file_checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BatchStatus.processing.value
    )

    # Row counts
    total_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    created_count: Mapped[int] = mapped_column(default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(default=0, nullable=False)
    skipped_duplicate_count: Mapped[int] = mapped_column(default=0, nullable=False)

    # Timestamps (ISO8601 strings for SQLite compatibility)
    uploaded_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    completed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    processing_duration_ms: Mapped[int | None] = mapped_column(nullable=True)

    # Error info (if failed)
    error_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    rows: Mapped[list["BulkUploadRow"]] = relationship(
        "BulkUploadRow",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BulkUploadRow.row_index",
    )

    __table_args__ = (
        Index("idx_bulk_upload_batches_status", "status"),
        Index("idx_bulk_upload_batches_uploaded_at", "uploaded_at"),
        Index("idx_bulk_upload_batches_checksum", "uploader", "file_checksum"),
    )

    def __repr__(self) -> str:
        return (
            f"<BulkUploadBatch(batch_id={self.batch_id!r}, "
            f"status={self.status!r}, total_rows={self.total_rows})>"
        )


class BulkUploadRow(Base):
    """Persisted outcome of a single uploaded row.

    The idempotency key is recorded for traceability only; uniqueness is
    enforced on the orders table, not here.

    Attributes:
        id: UUID primary key
        batch_pk: Foreign key to the parent batch
        row_index: 1-based data row position in the source sheet
        status: CREATED, SKIPPED_DUPLICATE or FAILED_VALIDATION
        idempotency_basis: CLIENT_REFERENCE or HASH (unset for invalid rows)
        idempotency_key: Key value used for duplicate detection
        order_id: Created or pre-existing order id
        error_messages: JSON list of {code, field, message}
        created_at: ISO8601 timestamp of record creation
    """

    __tablename__ = "bulk_upload_rows"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    batch_pk: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bulk_upload_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    idempotency_basis: Mapped[str | None] = mapped_column(String(32), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(300), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    error_messages: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    batch: Mapped["BulkUploadBatch"] = relationship(
        "BulkUploadBatch", back_populates="rows"
    )

    __table_args__ = (
        UniqueConstraint("batch_pk", "row_index", name="uq_bulk_upload_row_index"),
        Index("idx_bulk_upload_rows_batch", "batch_pk"),
        Index("idx_bulk_upload_rows_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<BulkUploadRow(batch_pk={self.batch_pk!r}, row={self.row_index}, "
            f"status={self.status!r})>"
        )


class Order(Base):
    """Shipment order created from an uploaded row.

    The (scope, idempotency_basis, idempotency_key) unique constraint is
    the only guard against duplicate creation; inserts race against it
    rather than against a prior lookup.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    scope: Mapped[str] = mapped_column(String(255), nullable=False)
    idempotency_basis: Mapped[str] = mapped_column(String(32), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.pending.value
    )

    # Client information
    client_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    client_id: Mapped[int | None] = mapped_column(nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Sender
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_address: Mapped[str] = mapped_column(Text, nullable=False)
    sender_contact: Mapped[str] = mapped_column(String(20), nullable=False)
    sender_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Receiver
    receiver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    receiver_address: Mapped[str] = mapped_column(Text, nullable=False)
    receiver_contact: Mapped[str] = mapped_column(String(20), nullable=False)
    receiver_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receiver_pincode: Mapped[str | None] = mapped_column(String(6), nullable=True)
    receiver_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receiver_state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Package
    item_count: Mapped[int] = mapped_column(nullable=False)
    total_weight: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    length_cm: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    width_cm: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    height_cm: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    item_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    declared_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Service
    service_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    carrier_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    carrier_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Financial / extra
    cod_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    special_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Provenance
    source_batch_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_row_index: Mapped[int | None] = mapped_column(nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (
        UniqueConstraint(
            "scope",
            "idempotency_basis",
            "idempotency_key",
            name="uq_orders_scope_idempotency",
        ),
        Index("idx_orders_status", "status"),
        Index("idx_orders_source_batch", "source_batch_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id!r}, scope={self.scope!r}, "
            f"basis={self.idempotency_basis!r})>"
        )
