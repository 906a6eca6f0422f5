"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the bulk order REST API.
Responses are serialized with camelCase keys.
"""

import json

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from src.services.bulk_types import BatchResult, RowOutcome


class CamelModel(BaseModel):
    """Base schema emitting camelCase keys and reading ORM attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class FieldErrorResponse(CamelModel):
    """One field-level error on a row."""

    code: str
    field: str
    message: str


class RowOutcomeResponse(CamelModel):
    """Outcome of one uploaded row."""

    row_index: int
    status: str
    idempotency_basis: str | None = None
    order_id: str | None = None
    error_messages: list[FieldErrorResponse] | None = None

    @classmethod
    def from_outcome(cls, outcome: RowOutcome) -> "RowOutcomeResponse":
        return cls(
            row_index=outcome.row_index,
            status=outcome.status.value,
            idempotency_basis=(
                outcome.idempotency_basis.value if outcome.idempotency_basis else None
            ),
            order_id=outcome.order_id,
            error_messages=(
                [FieldErrorResponse(**e.to_dict()) for e in outcome.errors]
                if outcome.errors
                else None
            ),
        )


class BulkUploadResponse(CamelModel):
    """Response schema for a processed upload."""

    batch_id: str
    total_rows: int
    created: int
    failed: int
    skipped_duplicate: int
    processing_duration_ms: int
    rows: list[RowOutcomeResponse]

    @classmethod
    def from_result(cls, result: BatchResult) -> "BulkUploadResponse":
        return cls(
            batch_id=result.batch_id,
            total_rows=result.total_rows,
            created=result.created,
            failed=result.failed,
            skipped_duplicate=result.skipped_duplicate,
            processing_duration_ms=result.processing_duration_ms,
            rows=[RowOutcomeResponse.from_outcome(o) for o in result.rows],
        )


class BatchSummaryResponse(CamelModel):
    """Response schema for a stored batch."""

    id: str
    batch_id: str
    status: str
    total_rows: int
    created_count: int
    failed_count: int
    skipped_duplicate_count: int
    uploaded_at: str
    processing_duration_ms: int | None
    uploader: str
    file_name: str
    file_size_bytes: int
    file_checksum: str
    completed_at: str | None
    error_code: str | None = None
    error_message: str | None = None


class BatchListResponse(CamelModel):
    """Response schema for paginated batch list."""

    batches: list[BatchSummaryResponse]
    total: int
    limit: int
    offset: int


class BatchRowResponse(CamelModel):
    """Persisted outcome of one row in a stored batch."""

    row_index: int
    status: str
    idempotency_basis: str | None
    idempotency_key: str | None
    order_id: str | None
    error_messages: list[FieldErrorResponse] | None = None

    @field_validator("error_messages", mode="before")
    @classmethod
    def _parse_error_messages(cls, v: str | list | None) -> list | None:
        """Parse error_messages from JSON string as stored in SQLite."""
        if v is None:
            return None
        if isinstance(v, str):
            return json.loads(v)
        return v


class BatchDetailResponse(BatchSummaryResponse):
    """Response schema for one batch with its row outcomes."""

    rows: list[BatchRowResponse]


class HealthResponse(BaseModel):
    """Liveness payload."""

    status: str
    version: str
    uptime_seconds: int
