"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for the source documents the posting engine
    reacts to.  One table holds expenses, payments and invoices; ``kind``
    tells them apart and selects the posting rule.
Architecture position: Kernel > Models.  May import from db/ and the domain
    enums it persists.

Invariants enforced:
    - Optimistic concurrency: ``version`` is the SQLAlchemy version_id_col.
      An UPDATE or DELETE against a stale version raises StaleDataError,
      which the transaction service surfaces as ConcurrentPostingConflictError.
    - exchange_rate, functional_amount and linked_journal_entry_id are
      computed fields, written only by the posting engine in the same unit of
      work as the journal entry they describe.
    - Foreign key to the linked journal entry keeps the back-reference valid.

Failure modes:
    - IntegrityError on duplicate ``number``.
    - StaleDataError on a concurrent UPDATE/DELETE.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MONEY_COLUMN, RATE_COLUMN
from ledger_kernel.domain.dtos import RATE_SOURCE_STORE, CalculationMethod  # noqa: F401


class TransactionKind(str, Enum):
    """Which posting rule applies to a transaction."""

    EXPENSE = "expense"
    PAYMENT = "payment"
    INVOICE = "invoice"

    @property
    def source_table(self) -> str:
        """Source document table name recorded on links, snapshots and audit rows."""
        return f"{self.value}s"


class TransactionStatus(str, Enum):
    """Lifecycle status.  Only PAID carries a journal effect."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    CARD = "card"


class Transaction(TrackedBase):
    """
    An expense, a payment or an invoice, in its own (original) currency.

    Expenses use ``category`` to pick the debit account.  Payments use
    ``swift_fee`` and ``bank_charges`` to split the gross receipt.  Invoices
    use neither; their currency alone picks the receivable and revenue
    accounts.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_kind_status", "kind", "status"),
        Index("idx_transaction_date", "transaction_date"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    # Document number, e.g. EXP-2024-001 / PAY-2024-001 / INV-2024-001
    number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Expense category (expenses only)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Vendor for expenses, customer for payments and invoices
    counterparty: Mapped[str | None] = mapped_column(String(200), nullable=True)

    amount: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    payment_method: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PaymentMethod.BANK_TRANSFER.value,
    )

    bank_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("bank_accounts.id"),
        nullable=True,
    )

    # Payment deductions, in the payment's own currency
    swift_fee: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False, default=Decimal("0"))

    bank_charges: Mapped[Decimal] = mapped_column(MONEY_COLUMN, nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.PENDING.value,
    )

    calculation_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=CalculationMethod.AMOUNT_DRIVES_FUNCTIONAL.value,
    )

    exchange_rate: Mapped[Decimal | None] = mapped_column(RATE_COLUMN, nullable=True)

    functional_amount: Mapped[Decimal | None] = mapped_column(MONEY_COLUMN, nullable=True)

    rate_source: Mapped[str | None] = mapped_column(String(100), nullable=True)

    linked_journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Transaction {self.number} {self.amount} {self.currency} {self.status}>"

    @property
    def source_table(self) -> str:
        return TransactionKind(self.kind).source_table

    @property
    def is_paid(self) -> bool:
        return self.status == TransactionStatus.PAID
