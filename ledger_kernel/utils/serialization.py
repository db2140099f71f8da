"""
Deterministic serialization for audit payloads.

Audit records store before/after values as JSON and carry a SHA-256 of the
canonical form, so the same values always hash the same way regardless of
dict ordering or Decimal scale.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def to_json_safe(value: Any) -> Any:
    """
    Convert a value tree to JSON-native types.

    Decimals keep their scale ("100.00" stays "100.00") so stored audit
    values read back exactly as they were posted.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return to_json_safe(value.value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, float):
        raise TypeError("float values are not allowed in audit payloads; use Decimal")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _canonical_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Scale-independent: 100.00 and 100.0 hash the same
        return str(obj.normalize())
    return to_json_safe(obj)


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, Decimal normalized."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_canonical_default,
    )


def canonical_hash(*payloads: Any) -> str:
    """Hex SHA-256 over the canonical JSON of the given payloads, in order."""
    canonical = canonicalize_json(list(payloads))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
