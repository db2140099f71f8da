"""Utility modules for the ledger kernel."""

from ledger_kernel.utils.serialization import (
    canonical_hash,
    canonicalize_json,
    to_json_safe,
)

__all__ = [
    "canonical_hash",
    "canonicalize_json",
    "to_json_safe",
]
