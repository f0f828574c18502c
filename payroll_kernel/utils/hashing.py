"""
Checksums for payroll records.

Audit entry checksums, stored payslip checksums and configuration
fingerprints are computed here so that every writer and verifier agrees on
the exact bytes being hashed.
"""

import hashlib
import json
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _encode_value(value: Any) -> Any:
    # 1.50 and 1.5 must hash identically
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    raise TypeError(f"Cannot canonicalize {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    """Sorted-key, whitespace-free JSON."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_value)


def hash_payload(payload: dict) -> str:
    return hash_bytes(canonicalize_json(payload).encode("utf-8"))


def hash_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def epoch_millis(moment: datetime) -> int:
    """Milliseconds since the epoch; naive values are read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def hash_status_change(
    document_id: str,
    from_status: str,
    to_status: str,
    changed_by: str,
    changed_at: datetime,
) -> str:
    """
    Checksum of one status change: ``document|from|to|actor|epoch_ms``.

    The timestamp enters as epoch milliseconds, so re-rendering the same
    instant in another timezone gives the same checksum.
    """
    line = "|".join((
        document_id,
        from_status,
        to_status,
        changed_by,
        str(epoch_millis(changed_at)),
    ))
    return hash_bytes(line.encode("utf-8"))
