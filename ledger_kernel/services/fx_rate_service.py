"""
FxRateService -- effective-dated FX rate store.

Responsibility:
    Point-in-time lookup of the latest active rate for an exact currency
    pair, upsert by ``(from_currency, to_currency, effective_date)`` with
    audit of the previous value, and deactivation.

Architecture position:
    Kernel > Services -- imperative shell.  The posting engine passes
    ``lookup`` into the pure rate resolver as its RateLookup.

Invariants enforced:
    - Lookup never returns an inactive rate or one dated after the
      requested date.  No inverse or triangulated rates.
    - One row per key.  A concurrent insert of the same key loses the
      unique-constraint race inside a savepoint and falls back to update.
    - Rates are never hard-deleted.
    - Changing a rate leaves existing postings untouched.  The result
      reports how many postings fall in the changed rate's validity
      window and a ``fx_rate_changed_with_existing_postings`` warning is
      logged.

Failure modes:
    - InvalidCurrencyError for a non-ISO currency code.
    - InvalidExchangeRateError for a non-positive or absurd rate.
    - MissingRateError from ``require_rate`` when nothing is found.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import validate_exchange_rate_value
from ledger_kernel.db.types import round_rate, validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import FxRateQuote, FxRateUpsertResult
from ledger_kernel.domain.fx import RATE_SOURCE_MANUAL
from ledger_kernel.exceptions import MissingRateError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_record import AuditOperation
from ledger_kernel.models.fx_rate import FxRate
from ledger_kernel.models.fx_snapshot import FxRateSnapshot
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.fx_rate")


def _to_quote(row: FxRate) -> FxRateQuote:
    return FxRateQuote(
        rate_id=row.id,
        from_currency=row.from_currency,
        to_currency=row.to_currency,
        effective_date=row.effective_date,
        rate=row.rate,
        source=row.source,
    )


def _audit_values(row: FxRate) -> dict:
    return {
        "id": row.id,
        "from_currency": row.from_currency,
        "to_currency": row.to_currency,
        "effective_date": row.effective_date,
        "rate": row.rate,
        "source": row.source,
        "notes": row.notes,
        "is_active": row.is_active,
    }


class FxRateService(BaseService):
    """
    Write side of the FX rate store, plus the lookup the posting engine uses.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT revalue existing postings when a rate changes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit: AuditService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup(
        self,
        from_currency: str,
        to_currency: str,
        on_or_before: date,
    ) -> FxRateQuote | None:
        """Latest active rate for the exact pair with effective_date <= on_or_before."""
        row = self.session.execute(
            select(FxRate)
            .where(
                FxRate.from_currency == from_currency,
                FxRate.to_currency == to_currency,
                FxRate.effective_date <= on_or_before,
                FxRate.is_active.is_(True),
            )
            .order_by(FxRate.effective_date.desc())
            .limit(1)
        ).scalar_one_or_none()

        if row is None:
            logger.debug(
                "fx_rate_not_found",
                extra={
                    "from_currency": from_currency,
                    "to_currency": to_currency,
                    "as_of": on_or_before,
                },
            )
            return None
        return _to_quote(row)

    def require_rate(
        self,
        from_currency: str,
        to_currency: str,
        on_or_before: date,
    ) -> FxRateQuote:
        quote = self.lookup(from_currency, to_currency, on_or_before)
        if quote is None:
            raise MissingRateError(
                from_currency=from_currency,
                to_currency=to_currency,
                as_of=on_or_before.isoformat(),
            )
        return quote

    # ------------------------------------------------------------------
    # Upsert / deactivate
    # ------------------------------------------------------------------

    def _locked_row(
        self,
        from_currency: str,
        to_currency: str,
        effective_date: date,
    ) -> FxRate | None:
        return self.session.execute(
            select(FxRate)
            .where(
                FxRate.from_currency == from_currency,
                FxRate.to_currency == to_currency,
                FxRate.effective_date == effective_date,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def upsert(
        self,
        from_currency: str,
        to_currency: str,
        effective_date: date,
        rate: Decimal,
        actor_id: UUID,
        source: str = RATE_SOURCE_MANUAL,
        notes: str | None = None,
    ) -> FxRateUpsertResult:
        """
        Insert or update the rate for ``(from, to, effective_date)``.

        An update re-activates a deactivated row.  Both paths are audited,
        the update with the previous value.
        """
        from_currency = validate_currency(from_currency)
        to_currency = validate_currency(to_currency)
        rate = round_rate(validate_exchange_rate_value(rate))

        existing = self._locked_row(from_currency, to_currency, effective_date)
        if existing is None:
            row = FxRate(
                from_currency=from_currency,
                to_currency=to_currency,
                effective_date=effective_date,
                rate=rate,
                source=source,
                notes=notes,
                is_active=True,
                created_by_id=actor_id,
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(row)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                logger.debug(
                    "fx_rate_insert_race_retry",
                    extra={
                        "from_currency": from_currency,
                        "to_currency": to_currency,
                        "effective_date": effective_date,
                    },
                )
                savepoint.rollback()
                existing = self._locked_row(from_currency, to_currency, effective_date)
                if existing is None:
                    raise
            else:
                self._audit.record(
                    "fx_rates", row.id, AuditOperation.CREATE,
                    None, _audit_values(row), actor_id,
                    description=f"FX rate {from_currency}/{to_currency} {effective_date} created",
                )
                logger.info(
                    "fx_rate_upserted",
                    extra={
                        "rate_id": str(row.id),
                        "from_currency": from_currency,
                        "to_currency": to_currency,
                        "effective_date": effective_date,
                        "rate": rate,
                        "source": source,
                        "rate_created": True,
                    },
                )
                return FxRateUpsertResult(
                    rate_id=row.id, created=True, previous_rate=None, rate=rate,
                )

        return self._update_existing(existing, rate, source, notes, actor_id)

    def _update_existing(
        self,
        row: FxRate,
        rate: Decimal,
        source: str,
        notes: str | None,
        actor_id: UUID,
    ) -> FxRateUpsertResult:
        old_values = _audit_values(row)
        previous_rate = row.rate

        row.rate = rate
        row.source = source
        if notes is not None:
            row.notes = notes
        row.is_active = True
        row.updated_by_id = actor_id
        self.session.flush()

        affected = 0
        if previous_rate != rate:
            affected = self.count_postings_in_window(
                row.from_currency, row.to_currency, row.effective_date,
            )

        self._audit.record(
            "fx_rates", row.id, AuditOperation.UPDATE,
            old_values, _audit_values(row), actor_id,
            description=(
                f"FX rate {row.from_currency}/{row.to_currency} {row.effective_date} "
                f"changed from {previous_rate} to {rate}"
            ),
        )

        result = FxRateUpsertResult(
            rate_id=row.id,
            created=False,
            previous_rate=previous_rate,
            rate=rate,
            postings_affected=affected,
        )
        logger.info(
            "fx_rate_upserted",
            extra={
                "rate_id": str(row.id),
                "from_currency": row.from_currency,
                "to_currency": row.to_currency,
                "effective_date": row.effective_date,
                "rate": rate,
                "previous_rate": previous_rate,
                "source": source,
                "rate_created": False,
            },
        )
        if result.has_warning:
            logger.warning(
                "fx_rate_changed_with_existing_postings",
                extra={
                    "rate_id": str(row.id),
                    "from_currency": row.from_currency,
                    "to_currency": row.to_currency,
                    "effective_date": row.effective_date,
                    "previous_rate": previous_rate,
                    "rate": rate,
                    "postings_affected": affected,
                },
            )
        return result

    def count_postings_in_window(
        self,
        from_currency: str,
        to_currency: str,
        effective_date: date,
    ) -> int:
        """
        Postings whose rate date falls in ``[effective_date, next rate date)``,
        i.e. postings that would have resolved this rate.
        """
        next_date = self.session.execute(
            select(func.min(FxRate.effective_date)).where(
                FxRate.from_currency == from_currency,
                FxRate.to_currency == to_currency,
                FxRate.effective_date > effective_date,
                FxRate.is_active.is_(True),
            )
        ).scalar_one_or_none()

        query = select(func.count(FxRateSnapshot.id)).where(
            FxRateSnapshot.currency == from_currency,
            FxRateSnapshot.functional_currency == to_currency,
            FxRateSnapshot.rate_date >= effective_date,
        )
        if next_date is not None:
            query = query.where(FxRateSnapshot.rate_date < next_date)
        return self.session.execute(query).scalar_one()

    def deactivate(self, rate_id: UUID, actor_id: UUID) -> bool:
        """
        Hide a rate from future lookups.  Returns False if already inactive.
        """
        row = self.session.execute(
            select(FxRate)
            .where(FxRate.id == rate_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

        if not row.is_active:
            return False

        old_values = _audit_values(row)
        row.is_active = False
        row.updated_by_id = actor_id
        self.session.flush()

        self._audit.record(
            "fx_rates", row.id, AuditOperation.UPDATE,
            old_values, _audit_values(row), actor_id,
            description=f"FX rate {row.from_currency}/{row.to_currency} {row.effective_date} deactivated",
        )
        logger.info(
            "fx_rate_deactivated",
            extra={
                "rate_id": str(row.id),
                "from_currency": row.from_currency,
                "to_currency": row.to_currency,
                "effective_date": row.effective_date,
            },
        )
        return True
