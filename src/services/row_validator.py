"""Field validation for bulk order rows.

validate_row checks one RawRow against the order rules and collects every
violation on the row before returning; it never stops at the first error.
It is pure: no I/O, no shared state, safe to call from worker threads.

Example:
    result = validate_row(raw)
    if isinstance(result, ValidationFailure):
        for err in result.errors:
            print(err.code, err.field, err.message)
"""

import re
from decimal import Decimal, InvalidOperation

from src.services.bulk_types import (
    ATTR_TO_HEADER,
    FieldError,
    RawRow,
    ServiceType,
    ValidatedRow,
    ValidationFailure,
)

# Required text columns and their maximum lengths
REQUIRED_TEXT_FIELDS: dict[str, int] = {
    "sender_name": 255,
    "sender_address": 1000,
    "sender_contact": 20,
    "receiver_name": 255,
    "receiver_address": 1000,
    "receiver_contact": 20,
}

OPTIONAL_TEXT_FIELDS: dict[str, int] = {
    "client_reference": 100,
    "client_name": 255,
    "client_company": 255,
    "contact_number": 20,
    "sender_email": 255,
    "receiver_email": 255,
    "receiver_city": 100,
    "receiver_state": 100,
    "item_description": 500,
    "carrier_name": 100,
    "carrier_id": 64,
    "special_instructions": 1000,
}

EMAIL_FIELDS = ("sender_email", "receiver_email")

MAX_TOTAL_WEIGHT = Decimal("999.99")
MIN_DIMENSION = Decimal("0.1")
MAX_DIMENSION = Decimal("999.9")
MAX_DECLARED_VALUE = Decimal("100000")
MAX_COD_AMOUNT = Decimal("50000")
# Integer columns are kept within the 32-bit INTEGER range
MAX_INTEGER = 2_147_483_647

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PINCODE_RE = re.compile(r"^\d{6}$")
_THOUSANDS_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")


def _clean(value: str | None) -> str | None:
    """Trim a cell value; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_decimal(value: str) -> Decimal | None:
    """Parse a finite decimal, or return None when the text is not numeric.

    Commas are accepted only as thousands separators ("1,250.5"); any other
    comma, such as a decimal comma in "1,5", makes the value non-numeric.
    """
    if "," in value:
        if not _THOUSANDS_RE.match(value):
            return None
        value = value.replace(",", "")
    try:
        parsed = Decimal(value)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def _parse_integral(value: str) -> Decimal | None:
    """Parse an integral number such as '3' or '3.0', kept as a Decimal.

    Callers range-check the Decimal before converting it with int(), so an
    exponent like '1E+999999999' never becomes a huge int.
    """
    parsed = _parse_decimal(value)
    if parsed is None or parsed != parsed.to_integral_value():
        return None
    return parsed


def validate_row(raw: RawRow) -> ValidatedRow | ValidationFailure:
    """Validate one raw row.

    Args:
        raw: Row as extracted from the spreadsheet.

    Returns:
        ValidatedRow with trimmed, typed values when every rule passes,
        otherwise ValidationFailure carrying all field errors found.
    """
    row = raw.row_index
    errors: list[FieldError] = []
    values: dict[str, object] = {}

    def _error(code: str, attr: str, **context: object) -> None:
        errors.append(FieldError.from_code(code, ATTR_TO_HEADER[attr], row, **context))

    def _text(attr: str, max_length: int, required: bool) -> None:
        value = _clean(getattr(raw, attr))
        if value is None:
            if required:
                _error("E-1001", attr)
            return
        if len(value) > max_length:
            _error("E-2011", attr, max_length=max_length)
            return
        values[attr] = value

    def _decimal(attr: str, required: bool = False) -> Decimal | None:
        text = _clean(getattr(raw, attr))
        if text is None:
            if required:
                _error("E-1001", attr)
            return None
        parsed = _parse_decimal(text)
        if parsed is None:
            _error("E-1003", attr, expected="number", value=text)
            return None
        return parsed

    for attr, max_length in REQUIRED_TEXT_FIELDS.items():
        _text(attr, max_length, required=True)
    for attr, max_length in OPTIONAL_TEXT_FIELDS.items():
        _text(attr, max_length, required=False)

    for attr in EMAIL_FIELDS:
        email = values.get(attr)
        if email is not None and not _EMAIL_RE.match(str(email)):
            _error("E-2009", attr, value=email)
            values.pop(attr)

    pincode = _clean(raw.receiver_pincode)
    if pincode is not None:
        if _PINCODE_RE.match(pincode):
            values["receiver_pincode"] = pincode
        else:
            _error("E-2008", "receiver_pincode", value=pincode)

    client_id = _clean(raw.client_id)
    if client_id is not None:
        parsed_id = _parse_integral(client_id)
        if parsed_id is None:
            _error("E-1003", "client_id", expected="integer", value=client_id)
        elif abs(parsed_id) > MAX_INTEGER:
            _error(
                "E-2007",
                "client_id",
                minimum=-MAX_INTEGER,
                maximum=MAX_INTEGER,
                value=client_id,
            )
        else:
            values["client_id"] = int(parsed_id)

    item_count = _clean(raw.item_count)
    if item_count is None:
        _error("E-1001", "item_count")
    else:
        parsed_count = _parse_integral(item_count)
        if parsed_count is None:
            _error("E-1003", "item_count", expected="integer", value=item_count)
        elif parsed_count < 0:
            _error("E-2006", "item_count", value=item_count)
        elif parsed_count < 1:
            _error("E-2005", "item_count", minimum=1, value=item_count)
        elif parsed_count > MAX_INTEGER:
            _error("E-2007", "item_count", minimum=1, maximum=MAX_INTEGER, value=item_count)
        else:
            values["item_count"] = int(parsed_count)

    weight = _decimal("total_weight", required=True)
    if weight is not None:
        if weight < 0:
            _error("E-2006", "total_weight", value=raw.total_weight.strip())
        elif weight == 0 or weight > MAX_TOTAL_WEIGHT:
            _error("E-2004", "total_weight", value=raw.total_weight.strip(), maximum=MAX_TOTAL_WEIGHT)
        else:
            values["total_weight"] = weight

    for attr in ("length_cm", "width_cm", "height_cm"):
        dimension = _decimal(attr)
        if dimension is None:
            continue
        if dimension < 0:
            _error("E-2006", attr, value=getattr(raw, attr).strip())
        elif dimension < MIN_DIMENSION or dimension > MAX_DIMENSION:
            _error(
                "E-2007",
                attr,
                minimum=MIN_DIMENSION,
                maximum=MAX_DIMENSION,
                value=getattr(raw, attr).strip(),
            )
        else:
            values[attr] = dimension

    for attr, maximum in (("declared_value", MAX_DECLARED_VALUE), ("cod_amount", MAX_COD_AMOUNT)):
        amount = _decimal(attr)
        if amount is None:
            continue
        if amount < 0:
            _error("E-2006", attr, value=getattr(raw, attr).strip())
        elif amount > maximum:
            _error("E-2007", attr, minimum=0, maximum=maximum, value=getattr(raw, attr).strip())
        else:
            values[attr] = amount

    service_type = _clean(raw.service_type)
    if service_type is not None:
        try:
            values["service_type"] = ServiceType(service_type.lower())
        except ValueError:
            _error("E-2010", "service_type", value=service_type)

    if errors:
        return ValidationFailure(row_index=row, errors=tuple(errors))
    return ValidatedRow(row_index=row, **values)
