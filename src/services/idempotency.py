"""Idempotency key resolution for exactly-once order creation.

A row that carries a client reference is identified by that reference.
A row without one is identified by a SHA-256 digest over a canonical form
of its content fields, so that re-typing the same order with different
spacing or capitalisation still resolves to the same key.
"""

import hashlib
import re
from decimal import Decimal

from src.db.models import IdempotencyBasis
from src.services.bulk_types import IdempotencyKey, ValidatedRow

# Fields hashed for rows without a client reference, in hash order.
HASH_FIELDS: tuple[str, ...] = (
    "sender_name",
    "sender_address",
    "receiver_name",
    "receiver_address",
    "item_count",
    "total_weight",
    "item_description",
    "declared_value",
)

_WHITESPACE_RE = re.compile(r"\s+")


def _canonical(value: object) -> str:
    """Return the canonical text used for hashing one field value."""
    if value is None:
        return ""
    if isinstance(value, Decimal):
        normalized = value.normalize()
        if normalized == 0:
            # -0 and 0E-2 hash the same as 0
            return "0"
        # normalize() turns 100 into 1E+2
        return format(normalized, "f")
    if isinstance(value, int):
        return str(value)
    return _WHITESPACE_RE.sub(" ", str(value).strip()).casefold()


def canonical_content(row: ValidatedRow) -> str:
    """Build the pipe-joined canonical string hashed for ``row``."""
    return "|".join(_canonical(getattr(row, name)) for name in HASH_FIELDS)


def compute_content_hash(row: ValidatedRow) -> str:
    """Return the SHA-256 hex digest of the row's canonical content."""
    return hashlib.sha256(canonical_content(row).encode("utf-8")).hexdigest()


def resolve_idempotency_key(row: ValidatedRow, scope: str) -> IdempotencyKey:
    """Resolve the idempotency key for a validated row.

    Args:
        row: Validated order row.
        scope: Idempotency scope (the uploader identity).

    Returns:
        IdempotencyKey with basis CLIENT_REFERENCE when the row has a
        non-blank client reference (kept exact and case-sensitive),
        otherwise basis HASH over the canonical content fields.
    """
    reference = (row.client_reference or "").strip()
    if reference:
        return IdempotencyKey(
            basis=IdempotencyBasis.client_reference,
            value=reference,
            scope=scope,
        )
    return IdempotencyKey(
        basis=IdempotencyBasis.hash,
        value=compute_content_hash(row),
        scope=scope,
    )
