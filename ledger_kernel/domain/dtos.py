"""
DTOs -- immutable data flowing through the posting pipeline.

Responsibility:
    TransactionState (a point-in-time snapshot of a source document),
    TransactionEvent (a create/update/delete with before/after state),
    PostingEffect (what the transition planner decided), RateResolution,
    LineDraft/JournalEntryDraft (builder output) and the read-side
    JournalEntryRecord/JournalLineRecord.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters called only from services and selectors.

Data flow:
    TransactionEvent -> [PostingEffect] -> JournalEntryDraft -> JournalEntry (ORM)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from ledger_kernel.domain.policy import AccountRef, AccountType

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalEntry as JournalEntryModel
    from ledger_kernel.models.journal import JournalEntryLine as JournalEntryLineModel
    from ledger_kernel.models.transaction import Transaction as TransactionModel


class CalculationMethod(str, Enum):
    """Which of exchange_rate / functional_amount is the independent input."""

    AMOUNT_DRIVES_FUNCTIONAL = "amount_drives_functional"
    FUNCTIONAL_DRIVES_RATE = "functional_drives_rate"


# Rate source tag for rates resolved from the FX rate store
RATE_SOURCE_STORE = "fx_rate_store"


class Operation(str, Enum):
    """CRUD operation on a source document."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def link_operation(self) -> str:
        return {"insert": "create", "update": "update", "delete": "delete"}[self.value]


class EffectType(str, Enum):
    POST = "post"
    REVERSE = "reverse"


class LineSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"

    def opposite(self) -> LineSide:
        return LineSide.CREDIT if self is LineSide.DEBIT else LineSide.DEBIT


# ---------------------------------------------------------------------------
# Source documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionState:
    """Snapshot of a transaction's fields at one instant."""

    id: UUID
    kind: str
    number: str
    transaction_date: date
    description: str
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    calculation_method: str
    category: str | None = None
    counterparty: str | None = None
    bank_account_id: UUID | None = None
    swift_fee: Decimal = Decimal("0")
    bank_charges: Decimal = Decimal("0")
    exchange_rate: Decimal | None = None
    functional_amount: Decimal | None = None
    rate_source: str | None = None
    linked_journal_entry_id: UUID | None = None
    version: int | None = None

    @classmethod
    def from_model(cls, model: TransactionModel) -> TransactionState:
        return cls(
            id=model.id,
            kind=model.kind,
            number=model.number,
            transaction_date=model.transaction_date,
            description=model.description,
            amount=model.amount,
            currency=model.currency,
            status=model.status,
            payment_method=model.payment_method,
            calculation_method=model.calculation_method,
            category=model.category,
            counterparty=model.counterparty,
            bank_account_id=model.bank_account_id,
            swift_fee=model.swift_fee if model.swift_fee is not None else Decimal("0"),
            bank_charges=model.bank_charges if model.bank_charges is not None else Decimal("0"),
            exchange_rate=model.exchange_rate,
            functional_amount=model.functional_amount,
            rate_source=model.rate_source,
            linked_journal_entry_id=model.linked_journal_entry_id,
            version=model.version,
        )

    @property
    def source_table(self) -> str:
        return f"{self.kind}s"

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"

    @property
    def net_amount(self) -> Decimal:
        """Amount actually received after payment deductions."""
        return self.amount - self.swift_fee - self.bank_charges

    def posting_fields(self) -> tuple:
        """Fields whose change invalidates an existing posting."""
        return (self.amount, self.currency, self.swift_fee, self.bank_charges)

    def to_audit_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "number": self.number,
            "transaction_date": self.transaction_date,
            "description": self.description,
            "category": self.category,
            "counterparty": self.counterparty,
            "amount": self.amount,
            "currency": self.currency,
            "payment_method": self.payment_method,
            "bank_account_id": self.bank_account_id,
            "swift_fee": self.swift_fee,
            "bank_charges": self.bank_charges,
            "status": self.status,
            "calculation_method": self.calculation_method,
            "exchange_rate": self.exchange_rate,
            "functional_amount": self.functional_amount,
            "rate_source": self.rate_source,
            "linked_journal_entry_id": self.linked_journal_entry_id,
            "version": self.version,
        }


@dataclass(frozen=True)
class TransactionEvent:
    """
    One state change of a source document.

    ``prior`` is None for INSERT; ``new`` is None for DELETE.
    """

    operation: Operation
    prior: TransactionState | None
    new: TransactionState | None
    actor_id: UUID

    def __post_init__(self) -> None:
        if self.operation == Operation.INSERT and self.new is None:
            raise ValueError("INSERT event requires new state")
        if self.operation == Operation.DELETE and self.prior is None:
            raise ValueError("DELETE event requires prior state")
        if self.operation == Operation.UPDATE and (self.prior is None or self.new is None):
            raise ValueError("UPDATE event requires prior and new state")

    @property
    def transaction_id(self) -> UUID:
        state = self.new or self.prior
        return state.id

    @property
    def current(self) -> TransactionState:
        """The state the journal should describe (prior state for deletes)."""
        return self.new or self.prior


@dataclass(frozen=True)
class PostingEffect:
    """One journal side effect decided by the transition planner."""

    effect_type: EffectType
    link_operation: str
    reason: str


# ---------------------------------------------------------------------------
# FX
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FxRateQuote:
    """An active stored rate as returned by a lookup."""

    rate_id: UUID
    from_currency: str
    to_currency: str
    effective_date: date
    rate: Decimal
    source: str


@dataclass(frozen=True)
class RateResolution:
    """
    The rate and functional amount a posting will use.

    ``from_store`` is True when the rate came from an FX store lookup; only
    other rates are written back to the store.
    """

    rate: Decimal
    functional_amount: Decimal
    rate_source: str | None
    from_store: bool = False
    quote: FxRateQuote | None = None


@dataclass(frozen=True)
class FxRateUpsertResult:
    """
    Outcome of an FX rate upsert.

    ``postings_affected`` counts postings already made inside the changed
    rate's validity window.  They are NOT adjusted retroactively.
    """

    rate_id: UUID
    created: bool
    previous_rate: Decimal | None
    rate: Decimal
    postings_affected: int = 0

    @property
    def has_warning(self) -> bool:
        return (
            not self.created
            and self.postings_affected > 0
            and self.previous_rate != self.rate
        )


# ---------------------------------------------------------------------------
# Journal drafts (builder output)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineDraft:
    line_seq: int
    account: AccountRef
    side: LineSide
    functional_amount: Decimal
    original_currency: str
    original_amount: Decimal
    fx_rate: Decimal
    description: str | None = None
    is_rounding: bool = False

    @property
    def debit(self) -> Decimal:
        return self.functional_amount if self.side == LineSide.DEBIT else Decimal("0")

    @property
    def credit(self) -> Decimal:
        return self.functional_amount if self.side == LineSide.CREDIT else Decimal("0")


@dataclass(frozen=True)
class JournalEntryDraft:
    """A balanced, not-yet-numbered journal entry."""

    entry_date: date
    description: str
    reference: str | None
    functional_currency: str
    source_document_type: str | None
    source_document_id: UUID | None
    lines: tuple[LineDraft, ...]
    reversal_of_id: UUID | None = None

    def __post_init__(self) -> None:
        if len(self.lines) < 2:
            raise ValueError("A journal entry needs at least two lines")

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JournalLineRecord:
    line_seq: int
    account_code: str
    account_name: str
    account_type: str
    debit_amount: Decimal
    credit_amount: Decimal
    functional_debit: Decimal
    functional_credit: Decimal
    original_currency: str
    original_amount: Decimal
    fx_rate_used: Decimal
    description: str | None
    is_rounding: bool

    @classmethod
    def from_model(cls, model: JournalEntryLineModel) -> JournalLineRecord:
        return cls(
            line_seq=model.line_seq,
            account_code=model.account_code,
            account_name=model.account_name,
            account_type=model.account_type,
            debit_amount=model.debit_amount,
            credit_amount=model.credit_amount,
            functional_debit=model.functional_debit,
            functional_credit=model.functional_credit,
            original_currency=model.original_currency,
            original_amount=model.original_amount,
            fx_rate_used=model.fx_rate_used,
            description=model.description,
            is_rounding=model.is_rounding,
        )

    @property
    def side(self) -> LineSide:
        return LineSide.DEBIT if self.debit_amount else LineSide.CREDIT

    @property
    def amount(self) -> Decimal:
        return self.debit_amount or self.credit_amount

    def to_account_ref(self) -> AccountRef:
        return AccountRef(
            code=self.account_code,
            name=self.account_name,
            account_type=AccountType(self.account_type),
        )


@dataclass(frozen=True)
class JournalEntryRecord:
    id: UUID
    entry_number: str
    entry_date: date
    description: str
    reference: str | None
    total_debit: Decimal
    total_credit: Decimal
    functional_currency: str
    status: str
    source_document_type: str | None
    source_document_id: UUID | None
    is_auto_generated: bool
    reversal_of_id: UUID | None
    posted_at: datetime | None
    created_by_id: UUID
    lines: tuple[JournalLineRecord, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> JournalEntryRecord:
        return cls(
            id=model.id,
            entry_number=model.entry_number,
            entry_date=model.entry_date,
            description=model.description,
            reference=model.reference,
            total_debit=model.total_debit,
            total_credit=model.total_credit,
            functional_currency=model.functional_currency,
            status=model.status,
            source_document_type=model.source_document_type,
            source_document_id=model.source_document_id,
            is_auto_generated=model.is_auto_generated,
            reversal_of_id=model.reversal_of_id,
            posted_at=model.posted_at,
            created_by_id=model.created_by_id,
            lines=tuple(JournalLineRecord.from_model(line) for line in model.lines),
        )

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def to_audit_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entry_number": self.entry_number,
            "entry_date": self.entry_date,
            "description": self.description,
            "reference": self.reference,
            "total_debit": self.total_debit,
            "total_credit": self.total_credit,
            "status": self.status,
            "source_document_type": self.source_document_type,
            "source_document_id": self.source_document_id,
            "reversal_of_id": self.reversal_of_id,
            "lines": [
                {
                    "account_code": line.account_code,
                    "debit": line.debit_amount,
                    "credit": line.credit_amount,
                    "original_currency": line.original_currency,
                    "original_amount": line.original_amount,
                    "fx_rate": line.fx_rate_used,
                }
                for line in self.lines
            ],
        }
