"""Canonical JSON and hashing used by the audit trail."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from ledger_kernel.models.audit_record import AuditOperation
from ledger_kernel.utils.serialization import (
    canonical_hash,
    canonicalize_json,
    to_json_safe,
)


def test_to_json_safe_keeps_decimal_scale():
    assert to_json_safe({"amount": Decimal("100.00")}) == {"amount": "100.00"}


def test_to_json_safe_converts_nested_values():
    uid = UUID("12345678-1234-5678-1234-567812345678")
    payload = {
        "id": uid,
        "on": date(2024, 6, 1),
        "at": datetime(2024, 6, 1, 12, tzinfo=timezone.utc),
        "op": AuditOperation.CREATE,
        "lines": [{"rate": Decimal("110.000000")}],
    }
    assert to_json_safe(payload) == {
        "id": "12345678-1234-5678-1234-567812345678",
        "on": "2024-06-01",
        "at": "2024-06-01T12:00:00+00:00",
        "op": "CREATE",
        "lines": [{"rate": "110.000000"}],
    }


def test_floats_rejected():
    with pytest.raises(TypeError):
        to_json_safe({"amount": 1.5})


def test_canonical_json_sorts_keys():
    assert canonicalize_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'


def test_hash_ignores_key_order_and_decimal_scale():
    first = canonical_hash({"amount": Decimal("100.00"), "currency": "USD"})
    second = canonical_hash({"currency": "USD", "amount": Decimal("100.0")})
    assert first == second
    assert len(first) == 64


def test_hash_changes_with_values():
    assert canonical_hash({"amount": "1"}) != canonical_hash({"amount": "2"})
    assert canonical_hash("a", "b") != canonical_hash("b", "a")
