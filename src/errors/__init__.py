"""Error handling framework for bulk order ingestion.

This package provides:
- Error code registry with E-XXXX format codes
- Error formatting and grouping utilities
- Typed domain exceptions for API error mapping

Error categories:
- E-1xxx: File and data errors
- E-2xxx: Field validation errors
- E-4xxx: System/internal errors
"""

from src.errors.registry import (
    ErrorCategory,
    ErrorCode,
    ERROR_REGISTRY,
    get_error,
    get_errors_by_category,
)
from src.errors.formatter import (
    BulkUploadError,
    format_error,
    format_error_summary,
    group_errors,
)
from src.errors.domain import DomainError, NotFoundError

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "BulkUploadError",
    "format_error",
    "group_errors",
    "format_error_summary",
    # Domain
    "DomainError",
    "NotFoundError",
]
