"""Maps validated rows onto order records and creates them exactly once."""

from dataclasses import fields
from typing import Any

from src.db.models import OrderStatus
from src.services.bulk_types import IdempotencyKey, InsertResult, ValidatedRow
from src.services.order_repository import OrderRepository


def build_order_data(row: ValidatedRow, batch_id: str | None = None) -> dict[str, Any]:
    """Map a validated row onto order column values.

    Service type is stored upper-case, matching the order service's
    enumeration. Key columns are added by the repository.

    Args:
        row: Validated order row.
        batch_id: Public id of the batch the row came from, if any.

    Returns:
        Dict of Order column values.
    """
    data: dict[str, Any] = {
        f.name: getattr(row, f.name) for f in fields(row) if f.name != "row_index"
    }
    if row.service_type is not None:
        data["service_type"] = row.service_type.value.upper()
    data["status"] = OrderStatus.pending.value
    data["source_batch_id"] = batch_id
    data["source_row_index"] = row.row_index
    return data


class OrderCreator:
    """Creates orders through the repository's atomic insert-if-absent."""

    def __init__(self, repository: OrderRepository) -> None:
        self._repository = repository

    def create_if_absent(
        self,
        key: IdempotencyKey,
        row: ValidatedRow,
        batch_id: str | None = None,
    ) -> InsertResult:
        """Create the order for ``row`` unless ``key`` is already taken.

        Raises:
            OrderPersistenceError: Propagated from the repository.
        """
        return self._repository.insert_if_absent(key, build_order_data(row, batch_id))
