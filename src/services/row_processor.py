"""Per-row pipeline: validate, resolve the idempotency key, create once."""

import logging

from src.services.bulk_types import (
    CreateResult,
    FieldError,
    IdempotencyKey,
    RawRow,
    RowOutcome,
    ValidationFailure,
)
from src.services.idempotency import resolve_idempotency_key
from src.services.order_creator import OrderCreator
from src.services.order_repository import OrderPersistenceError
from src.services.row_validator import validate_row

logger = logging.getLogger(__name__)

# Field name reported on technical failures that are not tied to a column
ROW_FIELD = "row"


class RowProcessor:
    """Turns one RawRow into exactly one RowOutcome.

    process() never raises for row-level problems. Validation errors,
    persistence failures and unexpected exceptions all become a
    FAILED_VALIDATION outcome so that one bad row cannot stop a batch.
    """

    def __init__(self, creator: OrderCreator) -> None:
        self._creator = creator

    def process(self, raw: RawRow, scope: str, batch_id: str | None = None) -> RowOutcome:
        """Process a single row.

        Args:
            raw: Row as extracted from the spreadsheet.
            scope: Idempotency scope (uploader identity).
            batch_id: Public batch id recorded on created orders.

        Returns:
            RowOutcome. The idempotency basis is set whenever the key was
            resolved, including for technical failures after that point.
        """
        key: IdempotencyKey | None = None
        try:
            validated = validate_row(raw)
            if isinstance(validated, ValidationFailure):
                logger.info(
                    "Row %d failed validation with %d error(s)",
                    raw.row_index,
                    len(validated.errors),
                )
                return RowOutcome.failed(raw.row_index, validated.errors)

            key = resolve_idempotency_key(validated, scope)
            result = self._creator.create_if_absent(key, validated, batch_id)
        except OrderPersistenceError as e:
            logger.error("Row %d could not be persisted: %s", raw.row_index, e)
            error = FieldError.from_code("E-4001", ROW_FIELD, raw.row_index, reason=str(e))
            return RowOutcome.failed(raw.row_index, [error], key)
        except Exception:
            logger.exception("Unexpected error processing row %d", raw.row_index)
            error = FieldError.from_code("E-4004", ROW_FIELD, raw.row_index)
            return RowOutcome.failed(raw.row_index, [error], key)

        if isinstance(result, CreateResult):
            logger.debug("Row %d created order %s", raw.row_index, result.order_id)
            return RowOutcome.created(raw.row_index, key, result.order_id)
        logger.debug(
            "Row %d duplicates order %s (basis=%s)",
            raw.row_index,
            result.existing_order_id,
            key.basis.value,
        )
        return RowOutcome.duplicate(raw.row_index, key, result.existing_order_id)
