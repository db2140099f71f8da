"""
Module: ledger_kernel.models.fx_snapshot
Responsibility: Point-in-time record of the rate a foreign-currency posting
    used, independent of the journal lines and of later rate edits.
Architecture position: Kernel > Models.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import RATE_COLUMN


class FxRateSnapshot(TrackedBase):
    __tablename__ = "fx_rate_snapshots"

    __table_args__ = (
        Index("idx_fx_snapshot_source", "transaction_table", "transaction_id"),
    )

    transaction_table: Mapped[str] = mapped_column(String(50), nullable=False)

    transaction_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    functional_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    rate: Mapped[Decimal] = mapped_column(RATE_COLUMN, nullable=False)

    rate_date: Mapped[date] = mapped_column(Date, nullable=False)

    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<FxRateSnapshot {self.currency}->{self.functional_currency} {self.rate} on {self.rate_date}>"
