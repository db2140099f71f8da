"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.fx_rate_service import FxRateService
from ledger_kernel.services.journal_store import JournalStore
from ledger_kernel.services.posting_engine import PostingEngine, PostingOutcome
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.transaction_service import (
    TransactionChange,
    TransactionService,
)

__all__ = [
    "AuditService",
    "FxRateService",
    "JournalStore",
    "PostingEngine",
    "PostingOutcome",
    "SequenceService",
    "TransactionChange",
    "TransactionService",
]
