"""
Module: ledger_kernel.models.bank_account
Responsibility: Minimal bank account record.  The posting engine only reads
    its currency, which selects the local or foreign bank ledger account.
Architecture position: Kernel > Models.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class BankAccount(TrackedBase):
    __tablename__ = "bank_accounts"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    account_number: Mapped[str] = mapped_column(String(50), nullable=False)

    bank_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # The account's own currency, not the currency of any transaction through it
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<BankAccount {self.name} ({self.currency})>"
