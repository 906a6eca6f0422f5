"""Typed records that flow through the bulk ingestion engine.

Every row leaves the spreadsheet as a RawRow with one named attribute per
template column, so nothing downstream handles an untyped mapping. The
validator turns a RawRow into a ValidatedRow (typed, trimmed) or a
ValidationFailure; the row processor turns either into a RowOutcome.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable

from src.db.models import BatchStatus, IdempotencyBasis, RowStatus
from src.errors import get_error

# Template columns in order: (spreadsheet header, RawRow attribute)
SPREADSHEET_COLUMNS: tuple[tuple[str, str], ...] = (
    ("clientReference", "client_reference"),
    ("clientId", "client_id"),
    ("clientName", "client_name"),
    ("clientCompany", "client_company"),
    ("contactNumber", "contact_number"),
    ("senderName", "sender_name"),
    ("senderAddress", "sender_address"),
    ("senderContact", "sender_contact"),
    ("senderEmail", "sender_email"),
    ("receiverName", "receiver_name"),
    ("receiverAddress", "receiver_address"),
    ("receiverContact", "receiver_contact"),
    ("receiverEmail", "receiver_email"),
    ("receiverPincode", "receiver_pincode"),
    ("receiverCity", "receiver_city"),
    ("receiverState", "receiver_state"),
    ("itemCount", "item_count"),
    ("totalWeight", "total_weight"),
    ("lengthCm", "length_cm"),
    ("widthCm", "width_cm"),
    ("heightCm", "height_cm"),
    ("itemDescription", "item_description"),
    ("declaredValue", "declared_value"),
    ("serviceType", "service_type"),
    ("carrierName", "carrier_name"),
    ("carrierId", "carrier_id"),
    ("codAmount", "cod_amount"),
    ("specialInstructions", "special_instructions"),
)

TEMPLATE_HEADERS: tuple[str, ...] = tuple(h for h, _ in SPREADSHEET_COLUMNS)
HEADER_TO_ATTR: dict[str, str] = dict(SPREADSHEET_COLUMNS)
ATTR_TO_HEADER: dict[str, str] = {a: h for h, a in SPREADSHEET_COLUMNS}


class ServiceType(str, Enum):
    """Service levels an order may request."""

    express = "express"
    standard = "standard"
    economy = "economy"


def cell_to_text(value: Any) -> str | None:
    """Convert a decoded spreadsheet cell into its text form.

    Integral floats lose their trailing ``.0`` so that numeric cells such
    as pincodes and phone numbers read back the way they were typed.

    Args:
        value: Cell value as produced by the workbook reader.

    Returns:
        Text value, or None for an empty cell.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class RawRow:
    """One spreadsheet row exactly as extracted, before any validation.

    Attributes:
        row_index: 1-based data row position in the source sheet.
        Remaining attributes mirror SPREADSHEET_COLUMNS; each is the cell
        text or None when the cell was empty or the column absent.
    """

    row_index: int
    client_reference: str | None = None
    client_id: str | None = None
    client_name: str | None = None
    client_company: str | None = None
    contact_number: str | None = None
    sender_name: str | None = None
    sender_address: str | None = None
    sender_contact: str | None = None
    sender_email: str | None = None
    receiver_name: str | None = None
    receiver_address: str | None = None
    receiver_contact: str | None = None
    receiver_email: str | None = None
    receiver_pincode: str | None = None
    receiver_city: str | None = None
    receiver_state: str | None = None
    item_count: str | None = None
    total_weight: str | None = None
    length_cm: str | None = None
    width_cm: str | None = None
    height_cm: str | None = None
    item_description: str | None = None
    declared_value: str | None = None
    service_type: str | None = None
    carrier_name: str | None = None
    carrier_id: str | None = None
    cod_amount: str | None = None
    special_instructions: str | None = None

    @classmethod
    def from_mapping(cls, row_index: int, mapping: Mapping[str, Any]) -> "RawRow":
        """Build a RawRow from a header -> cell value mapping.

        Unknown headers are ignored; missing headers leave the attribute None.

        Args:
            row_index: 1-based data row position.
            mapping: Spreadsheet header names to decoded cell values.

        Returns:
            Immutable RawRow.
        """
        values = {
            HEADER_TO_ATTR[header]: cell_to_text(value)
            for header, value in mapping.items()
            if header in HEADER_TO_ATTR
        }
        return cls(row_index=row_index, **values)

    def is_blank(self) -> bool:
        """Return True when every column is empty or whitespace."""
        return all(
            not (getattr(self, f.name) or "").strip()
            for f in fields(self)
            if f.name != "row_index"
        )


@dataclass(frozen=True)
class ValidatedRow:
    """A RawRow that passed validation, with trimmed and typed values."""

    row_index: int
    sender_name: str
    sender_address: str
    sender_contact: str
    receiver_name: str
    receiver_address: str
    receiver_contact: str
    item_count: int
    total_weight: Decimal
    client_reference: str | None = None
    client_id: int | None = None
    client_name: str | None = None
    client_company: str | None = None
    contact_number: str | None = None
    sender_email: str | None = None
    receiver_email: str | None = None
    receiver_pincode: str | None = None
    receiver_city: str | None = None
    receiver_state: str | None = None
    length_cm: Decimal | None = None
    width_cm: Decimal | None = None
    height_cm: Decimal | None = None
    item_description: str | None = None
    declared_value: Decimal | None = None
    service_type: ServiceType | None = None
    carrier_name: str | None = None
    carrier_id: str | None = None
    cod_amount: Decimal | None = None
    special_instructions: str | None = None


@dataclass(frozen=True)
class FieldError:
    """One field-level problem found on a row.

    Attributes:
        code: Error code in E-XXXX format.
        field: Spreadsheet column name the error refers to.
        message: Operator-facing description.
    """

    code: str
    field: str
    message: str

    @classmethod
    def from_code(cls, code: str, field: str, row: int, **context: object) -> "FieldError":
        """Build a field error from a registry code.

        Args:
            code: Error code in E-XXXX format.
            field: Spreadsheet column name.
            row: Row index, substituted into the message.
            **context: Extra template values (value, maximum, ...).

        Returns:
            FieldError with its message rendered from the registry template.
        """
        error_def = get_error(code)
        template = error_def.message_template if error_def else f"Unknown error: {code}"
        try:
            message = template.format(field=field, row=row, **context)
        except KeyError:
            message = template
        return cls(code=code, field=field, message=message)

    def to_dict(self) -> dict[str, str]:
        """Return the wire representation {code, field, message}."""
        return {"code": self.code, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidationFailure:
    """Every field error collected for one row."""

    row_index: int
    errors: tuple[FieldError, ...]


@dataclass(frozen=True)
class IdempotencyKey:
    """Identity of a logical order submission within a scope.

    Two rows producing equal keys are duplicates of each other regardless
    of which batch or upload produced them.
    """

    basis: IdempotencyBasis
    value: str
    scope: str


@dataclass(frozen=True)
class CreateResult:
    """A new order was inserted."""

    order_id: str


@dataclass(frozen=True)
class DuplicateResult:
    """An order with the same key already existed."""

    existing_order_id: str


InsertResult = CreateResult | DuplicateResult


@dataclass(frozen=True)
class RowOutcome:
    """Terminal classification of one input row.

    order_id is present iff the status is CREATED or SKIPPED_DUPLICATE;
    errors are non-empty iff the status is FAILED_VALIDATION.
    """

    row_index: int
    status: RowStatus
    idempotency_basis: IdempotencyBasis | None = None
    idempotency_key: str | None = None
    order_id: str | None = None
    errors: tuple[FieldError, ...] = ()

    def __post_init__(self) -> None:
        failed = self.status == RowStatus.failed_validation
        if failed != bool(self.errors):
            raise ValueError(
                f"Row {self.row_index}: errors must be present iff status is "
                f"{RowStatus.failed_validation.value}"
            )
        if failed == (self.order_id is not None):
            raise ValueError(
                f"Row {self.row_index}: order_id must be present iff the row "
                "resolved to an order"
            )

    @classmethod
    def created(cls, row_index: int, key: IdempotencyKey, order_id: str) -> "RowOutcome":
        return cls(
            row_index=row_index,
            status=RowStatus.created,
            idempotency_basis=key.basis,
            idempotency_key=key.value,
            order_id=order_id,
        )

    @classmethod
    def duplicate(cls, row_index: int, key: IdempotencyKey, order_id: str) -> "RowOutcome":
        return cls(
            row_index=row_index,
            status=RowStatus.skipped_duplicate,
            idempotency_basis=key.basis,
            idempotency_key=key.value,
            order_id=order_id,
        )

    @classmethod
    def failed(
        cls,
        row_index: int,
        errors: tuple[FieldError, ...] | list[FieldError],
        key: IdempotencyKey | None = None,
    ) -> "RowOutcome":
        return cls(
            row_index=row_index,
            status=RowStatus.failed_validation,
            idempotency_basis=key.basis if key else None,
            idempotency_key=key.value if key else None,
            errors=tuple(errors),
        )


@dataclass(frozen=True)
class BatchContext:
    """Metadata describing one upload, supplied by the caller.

    Attributes:
        uploader: Uploader identity; also the idempotency scope.
        file_name: Original file name.
        file_checksum: SHA-256 hex digest of the uploaded bytes.
        file_size_bytes: Size of the uploaded bytes.
    """

    uploader: str
    file_name: str
    file_checksum: str
    file_size_bytes: int = 0


@dataclass(frozen=True)
class BatchResult:
    """Final report for a processed batch, rows in original order."""

    batch_id: str
    status: BatchStatus
    total_rows: int
    created: int
    failed: int
    skipped_duplicate: int
    processing_duration_ms: int
    rows: tuple[RowOutcome, ...] = field(default_factory=tuple)


# Callback type for progress reporting
ProgressCallback = Callable[..., Awaitable[None]]
