"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.audit_selector import AuditRecordDTO, AuditSelector
from ledger_kernel.selectors.journal_selector import (
    JournalLinkDTO,
    JournalSelector,
    active_entry_query,
)

__all__ = [
    "AuditRecordDTO",
    "AuditSelector",
    "JournalLinkDTO",
    "JournalSelector",
    "active_entry_query",
]
