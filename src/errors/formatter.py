"""Error formatting and grouping utilities.

This module provides:
- BulkUploadError exception class for application errors
- Error formatting for operator display
- Error grouping to combine the same field error across rows
"""

from dataclasses import dataclass, field

from src.errors.registry import get_error


@dataclass
class BulkUploadError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: Action the operator should take to resolve.
        rows: List of affected row numbers.
        column: Affected spreadsheet column, if applicable.
        is_retryable: Whether the operation can be retried without user action.
        details: Additional context dictionary.
    """

    code: str
    message: str
    remediation: str
    rows: list[int] = field(default_factory=list)  # Affected row numbers
    column: str | None = None  # Affected column name
    is_retryable: bool = False
    details: dict = field(default_factory=dict)  # Additional context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code}: {self.message}"

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "BulkUploadError":
        """Create error from registry code with context substitution.

        Args:
            code: Error code in E-XXXX format.
            **kwargs: Context values for message template substitution.
                Special keys 'rows', 'column', 'details' are used for
                BulkUploadError fields rather than message substitution.

        Returns:
            BulkUploadError instance with formatted message.
        """
        rows = kwargs.get("rows", [])
        if not isinstance(rows, list):
            rows = []
        column = kwargs.get("column")
        if not isinstance(column, str):
            column = None
        details = kwargs.get("details", {})
        if not isinstance(details, dict):
            details = {}

        error_def = get_error(code)
        if not error_def:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Contact support.",
                rows=rows,
                column=column,
                details=details,
            )

        template_kwargs = {
            k: v for k, v in kwargs.items() if k not in ("rows", "details")
        }
        try:
            message = error_def.message_template.format(**template_kwargs)
        except KeyError:
            # Keep template if some placeholders are missing
            message = error_def.message_template

        return cls(
            code=error_def.code,
            message=message,
            remediation=error_def.remediation,
            is_retryable=error_def.is_retryable,
            rows=rows,
            column=column,
            details=details,
        )


def format_error(error: BulkUploadError, include_remediation: bool = True) -> str:
    """Format error for display to the operator.

    Args:
        error: The BulkUploadError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string suitable for terminal display.
    """
    lines = [f"{error.code}: {error.message}"]

    if error.rows:
        if len(error.rows) == 1:
            lines.append(f"  Location: Row {error.rows[0]}")
        else:
            rows_str = ", ".join(str(r) for r in error.rows[:10])
            if len(error.rows) > 10:
                rows_str += f" (and {len(error.rows) - 10} more)"
            lines.append(f"  Affected rows: {rows_str}")

    if error.column:
        lines.append(f"  Column: {error.column}")

    if include_remediation:
        lines.append(f"  Action: {error.remediation}")

    return "\n".join(lines)


def group_errors(errors: list[BulkUploadError]) -> list[BulkUploadError]:
    """Group errors by code and column, combining row numbers.

    Row numbers are part of most field messages, so grouping keys on
    code + column and keeps the first message seen as representative.

    Example:
        5 "Missing receiverName" errors on rows 1,2,3,4,5
        -> 1 error with rows=[1,2,3,4,5]

    Args:
        errors: List of BulkUploadError objects to group.

    Returns:
        List of grouped BulkUploadError objects with combined rows.
    """
    groups: dict[str, BulkUploadError] = {}

    for error in errors:
        key = f"{error.code}|{error.column or error.message}"

        if key in groups:
            groups[key].rows.extend(error.rows)
        else:
            groups[key] = BulkUploadError(
                code=error.code,
                message=error.message,
                remediation=error.remediation,
                rows=list(error.rows),  # Copy to avoid mutation
                column=error.column,
                is_retryable=error.is_retryable,
                details=error.details.copy(),
            )

    result = list(groups.values())
    for error in result:
        error.rows = sorted(set(error.rows))

    return result


def format_error_summary(errors: list[BulkUploadError]) -> str:
    """Format a list of errors for display, grouping duplicates.

    Args:
        errors: List of BulkUploadError objects.

    Returns:
        Operator-friendly summary.
    """
    if not errors:
        return "No errors."

    grouped = group_errors(errors)

    if len(grouped) == 1:
        return format_error(grouped[0])

    lines = [f"{len(grouped)} error type(s) found:\n"]
    for i, error in enumerate(grouped, 1):
        lines.append(f"{i}. {format_error(error)}")
        lines.append("")

    return "\n".join(lines)
