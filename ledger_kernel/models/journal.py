"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines, the
    authoritative financial record produced by the posting engine.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - entry_number is UNIQUE (JE-<year>-<4-digit seq>, allocated by
      SequenceService under a row lock).
    - reversal_of_id is UNIQUE: an entry is reversed at most once.
    - Posted entries and their lines are never updated or deleted (ORM
      listeners in db/immutability.py).  Corrections are new, mirrored entries.
    - total_debit == total_credit within the configured tolerance (checked by
      JournalStore before the entry is flushed; is_balanced re-checks on read).

Failure modes:
    - IntegrityError on duplicate entry_number or second reversal.
    - ImmutabilityViolationError on UPDATE/DELETE of a posted entry or line.

Audit relevance:
    Every line carries the original currency, original amount and the rate
    used, so a functional amount can be re-derived from the line alone.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MONEY_COLUMN, RATE_COLUMN


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.  DRAFT -> POSTED, one way."""

    DRAFT = "draft"
    POSTED = "posted"


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    ``created_by_id`` is the actor whose state change produced the entry.
    Automated entries point back at their source document through
    ``source_document_type`` / ``source_document_id``.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("entry_number", name="uq_journal_entry_number"),
        UniqueConstraint("reversal_of_id", name="uq_journal_reversal_of"),
        Index("idx_journal_source", "source_document_type", "source_document_id"),
        Index("idx_journal_entry_date", "entry_date"),
    )

    entry_number: Mapped[str] = mapped_column(String(20), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Source document number (EXP-..., PAY-...)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_debit: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False)

    functional_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        default=JournalEntryStatus.DRAFT.value,
        nullable=False,
    )

    source_document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    source_document_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # If this is a reversal, points to the original entry
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    lines: Mapped[list["JournalEntryLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.line_seq",
        lazy="selectin",
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @property
    def line_debit_total(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0"))

    @property
    def line_credit_total(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0"))

    def is_balanced(self, tolerance: Decimal = Decimal("0.01")) -> bool:
        """Read-side check that line debits equal line credits within tolerance."""
        return abs(self.line_debit_total - self.line_credit_total) <= tolerance


class JournalEntryLine(TrackedBase):
    """
    One debit or credit line.

    Exactly one of debit_amount / credit_amount is non-zero.  Both are ledger
    (functional-currency) amounts and equal functional_debit /
    functional_credit; original_currency, original_amount and fx_rate_used
    carry the source-side values.
    """

    __tablename__ = "journal_entry_lines"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_seq", name="uq_journal_line_seq"),
        Index("idx_journal_line_account", "account_code"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    account_code: Mapped[str] = mapped_column(String(20), nullable=False)

    account_name: Mapped[str] = mapped_column(String(200), nullable=False)

    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    debit_amount: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False, default=Decimal("0"))

    credit_amount: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False, default=Decimal("0"))

    functional_debit: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False, default=Decimal("0"))

    functional_credit: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False, default=Decimal("0"))

    original_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    original_amount: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False)

    fx_rate_used: Mapped[Decimal] = mapped_column(RATE_COLUMN, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Marks the single balancing adjustment, if any
    is_rounding: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        side = "Dr" if self.debit_amount else "Cr"
        amount = self.debit_amount or self.credit_amount
        return f"<JournalEntryLine {self.account_code} {side} {amount}>"
