"""
Module: ledger_kernel.models.fx_rate
Responsibility: ORM persistence for effective-dated currency-pair rates, the
    point-in-time reference data every foreign-currency posting resolves.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (from_currency, to_currency, effective_date); concurrent
      upserts of the same key resolve through this unique constraint.
    - rate is strictly positive with six fractional digits (validated by the
      ORM listener in db/immutability.py).
    - Rows are never hard-deleted.  Deactivation (is_active=False) hides a
      rate from lookups while keeping its history.

Audit relevance:
    Every create and update of a rate is recorded in the audit trail with the
    previous value, so postings made against an earlier value stay explainable.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import RATE_COLUMN


class FxRate(TrackedBase):
    """
    One directional conversion factor valid from ``effective_date`` onwards.

    ``amount_in_from_currency * rate == amount_in_to_currency``.  No inverse or
    triangulated rates are derived from a row.
    """

    __tablename__ = "fx_rates"

    __table_args__ = (
        UniqueConstraint(
            "from_currency", "to_currency", "effective_date",
            name="uq_fx_rate_pair_date",
        ),
        Index("idx_fx_rate_lookup", "from_currency", "to_currency", "effective_date"),
    )

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    rate: Mapped[Decimal] = mapped_column(RATE_COLUMN, nullable=False)

    # Provenance tag: "manual", "Bangladesh Bank", "Expense", "Payment", ...
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="manual")

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return (
            f"<FxRate {self.from_currency}/{self.to_currency} "
            f"{self.effective_date} = {self.rate}>"
        )
