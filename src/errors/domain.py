"""Typed domain exceptions for API error mapping.

Routes catch specific exception types to return appropriate HTTP status
codes instead of matching on message strings.

Usage:
    # In service layer
    raise NotFoundError("Batch", batch_id)

    # In route handler
    try:
        detail = service.get_batch(batch_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier
