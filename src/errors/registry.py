"""Error code registry with E-XXXX format codes.

This module defines the error code system for bulk order ingestion,
organizing errors into categories:
- E-1xxx: File and data errors (structural, batch-level)
- E-2xxx: Field validation errors (row-level)
- E-4xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    DATA = "data"  # E-1xxx: File and data errors
    VALIDATION = "validation"  # E-2xxx: Field validation errors
    SYSTEM = "system"  # E-4xxx: System/internal errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str  # Short title for display
    message_template: str  # Message with {placeholders}
    remediation: str  # Action user should take
    is_retryable: bool = False  # Can be retried without user action


# Error registry - all defined error codes
ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Data errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.DATA,
        title="Missing Required Field",
        message_template="Required field '{field}' is missing in row {row}.",
        remediation="Fill in the missing value and upload the row again.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.DATA,
        title="Empty Upload",
        message_template="No order rows found in '{file_name}'.",
        remediation="Add at least one order below the header row of the template.",
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.DATA,
        title="Invalid Data Type",
        message_template="Field '{field}' in row {row} has invalid type. Expected {expected}, got '{value}'.",
        remediation="Correct the value in the spreadsheet and retry.",
    ),
    "E-1004": ErrorCode(
        code="E-1004",
        category=ErrorCategory.DATA,
        title="Missing Required Headers",
        message_template="Missing required headers: {headers}.",
        remediation="Download the template and keep its header row unchanged. Column names are case-sensitive.",
    ),
    "E-1005": ErrorCode(
        code="E-1005",
        category=ErrorCategory.DATA,
        title="Unreadable Spreadsheet",
        message_template="Could not read '{file_name}' as an Excel workbook: {reason}",
        remediation="Save the file as .xlsx and upload it again.",
    ),
    "E-1006": ErrorCode(
        code="E-1006",
        category=ErrorCategory.DATA,
        title="File Too Large",
        message_template="Upload is {size} bytes; the limit is {limit} bytes.",
        remediation="Split the orders across several files and upload each one.",
    ),
    "E-1007": ErrorCode(
        code="E-1007",
        category=ErrorCategory.DATA,
        title="Too Many Rows",
        message_template="Upload contains {count} order rows; the limit is {limit}.",
        remediation="Split the orders across several files and upload each one.",
    ),
    # Validation errors (E-2xxx)
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.VALIDATION,
        title="Invalid Weight",
        message_template="Invalid weight '{value}' in row {row}. Weight must be greater than 0 and at most {maximum} kg.",
        remediation="Correct the weight value and retry.",
    ),
    "E-2005": ErrorCode(
        code="E-2005",
        category=ErrorCategory.VALIDATION,
        title="Value Too Small",
        message_template="Field '{field}' in row {row} must be at least {minimum}. Value: '{value}'.",
        remediation="Correct the value and retry.",
    ),
    "E-2006": ErrorCode(
        code="E-2006",
        category=ErrorCategory.VALIDATION,
        title="Negative Value",
        message_template="Field '{field}' in row {row} must not be negative. Value: '{value}'.",
        remediation="Enter zero or a positive amount and retry.",
    ),
    "E-2007": ErrorCode(
        code="E-2007",
        category=ErrorCategory.VALIDATION,
        title="Value Out Of Range",
        message_template="Field '{field}' in row {row} must be between {minimum} and {maximum}. Value: '{value}'.",
        remediation="Correct the value and retry.",
    ),
    "E-2008": ErrorCode(
        code="E-2008",
        category=ErrorCategory.VALIDATION,
        title="Invalid Pincode",
        message_template="Invalid pincode '{value}' in row {row}. Pincode must be exactly 6 digits.",
        remediation="Enter the 6-digit postal pincode and retry.",
    ),
    "E-2009": ErrorCode(
        code="E-2009",
        category=ErrorCategory.VALIDATION,
        title="Invalid Email",
        message_template="Field '{field}' in row {row} is not a valid email address. Value: '{value}'.",
        remediation="Correct the email address or leave it blank.",
    ),
    "E-2010": ErrorCode(
        code="E-2010",
        category=ErrorCategory.VALIDATION,
        title="Invalid Service Type",
        message_template="Invalid service type '{value}' in row {row}. Must be express, standard, or economy.",
        remediation="Use one of: express, standard, economy.",
    ),
    "E-2011": ErrorCode(
        code="E-2011",
        category=ErrorCategory.VALIDATION,
        title="Field Too Long",
        message_template="Field '{field}' in row {row} exceeds maximum length ({max_length} characters).",
        remediation="Shorten the value and retry.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Database Error",
        message_template="Database operation failed: {reason}",
        remediation="This is a system error. Upload the file again; rows already created will be skipped as duplicates.",
        is_retryable=True,
    ),
    "E-4004": ErrorCode(
        code="E-4004",
        category=ErrorCategory.SYSTEM,
        title="Row Processing Error",
        message_template="Unexpected error while processing row {row}.",
        remediation="Upload the file again. Contact support if the row keeps failing.",
        is_retryable=True,
    ),
    "E-4005": ErrorCode(
        code="E-4005",
        category=ErrorCategory.SYSTEM,
        title="Batch Cancelled",
        message_template="Batch {batch_id} was cancelled after {completed} of {total} rows.",
        remediation="Upload the file again; rows already created will be skipped as duplicates.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in the specified category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
