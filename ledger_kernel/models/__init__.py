"""ORM models for the ledger kernel."""

from ledger_kernel.models.audit_record import AuditOperation, AuditRecord
from ledger_kernel.models.auto_journal_link import AutoJournalLink, LinkOperation
from ledger_kernel.models.bank_account import BankAccount
from ledger_kernel.models.fx_rate import FxRate
from ledger_kernel.models.fx_snapshot import FxRateSnapshot
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
)
from ledger_kernel.models.sequence_counter import SequenceCounter
from ledger_kernel.models.transaction import (
    RATE_SOURCE_STORE,
    CalculationMethod,
    PaymentMethod,
    Transaction,
    TransactionKind,
    TransactionStatus,
)

__all__ = [
    "AuditOperation",
    "AuditRecord",
    "AutoJournalLink",
    "BankAccount",
    "CalculationMethod",
    "FxRate",
    "FxRateSnapshot",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "LinkOperation",
    "PaymentMethod",
    "RATE_SOURCE_STORE",
    "SequenceCounter",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
]
