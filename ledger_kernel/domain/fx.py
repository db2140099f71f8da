"""
FX conversion rules.

Responsibility:
    Decide which rate a posting uses and derive the dependent field of the
    (exchange_rate, functional_amount) pair, honouring the transaction's
    calculation method:

    amount_drives_functional (default)
        rate is the input.  functional currency -> 1; caller-supplied rate
        -> used as-is; otherwise an FX store lookup.
        functional_amount = round_money(amount * rate).

    functional_drives_rate
        functional_amount is the input and is never overwritten.
        exchange_rate = round_rate(functional_amount / amount).

Architecture position:
    Kernel > Domain.  The store lookup is injected as a callable so this
    module stays free of I/O.
"""

from collections.abc import Callable
from datetime import date
from decimal import Decimal

from ledger_kernel.db.types import round_money, round_rate
from ledger_kernel.domain.dtos import (
    RATE_SOURCE_STORE,
    CalculationMethod,
    FxRateQuote,
    RateResolution,
    TransactionState,
)
from ledger_kernel.exceptions import InvalidTransactionError, MissingRateError

RateLookup = Callable[[str, str, date], FxRateQuote | None]

RATE_SOURCE_MANUAL = "manual"
RATE_SOURCE_DERIVED = "derived"

ONE = Decimal("1")


def convert(amount: Decimal, rate: Decimal, places: int = 2) -> Decimal:
    """Original amount -> functional amount, ROUND_HALF_UP to ``places``."""
    return round_money(amount * rate, places)


def derive_rate(functional_amount: Decimal, amount: Decimal, places: int = 6) -> Decimal:
    if amount == 0:
        raise InvalidTransactionError("amount", "cannot derive a rate from a zero amount")
    return round_rate(functional_amount / amount, places)


def derive_computed_fields(
    *,
    amount: Decimal,
    currency: str,
    calculation_method: str,
    exchange_rate: Decimal | None,
    functional_amount: Decimal | None,
    rate_source: str | None,
    functional_currency: str,
    rate_context_changed: bool = False,
    minor_unit_places: int = 2,
    rate_places: int = 6,
) -> tuple[Decimal | None, Decimal | None, str | None]:
    """
    Recompute the dependent half of (exchange_rate, functional_amount).

    ``rate_context_changed`` is True when currency or date changed; a rate
    that came from the FX store is then discarded so posting re-resolves it.

    Returns:
        (exchange_rate, functional_amount, rate_source)
    """
    if currency == functional_currency:
        return ONE, amount, None

    if rate_source == RATE_SOURCE_STORE and rate_context_changed:
        exchange_rate, rate_source = None, None
        if calculation_method == CalculationMethod.AMOUNT_DRIVES_FUNCTIONAL:
            functional_amount = None

    if calculation_method == CalculationMethod.FUNCTIONAL_DRIVES_RATE:
        if functional_amount is None:
            return None, None, None
        return (
            derive_rate(functional_amount, amount, rate_places),
            functional_amount,
            RATE_SOURCE_DERIVED,
        )

    if exchange_rate is None:
        return None, None, None
    return (
        exchange_rate,
        convert(amount, exchange_rate, minor_unit_places),
        rate_source or RATE_SOURCE_MANUAL,
    )


def resolve_posting_rate(
    state: TransactionState,
    functional_currency: str,
    lookup: RateLookup,
    minor_unit_places: int = 2,
    rate_places: int = 6,
) -> RateResolution:
    """
    Resolve the rate and functional amount a posting will use.

    Raises:
        MissingRateError: Foreign currency, no usable caller rate, and no
            active stored rate on or before the transaction date.
        InvalidTransactionError: functional_drives_rate without a
            functional amount.
    """
    if state.currency == functional_currency:
        return RateResolution(rate=ONE, functional_amount=state.amount, rate_source=None)

    if state.calculation_method == CalculationMethod.FUNCTIONAL_DRIVES_RATE:
        if state.functional_amount is None:
            raise InvalidTransactionError(
                "functional_amount",
                "required when calculation_method is functional_drives_rate",
            )
        return RateResolution(
            rate=derive_rate(state.functional_amount, state.amount, rate_places),
            functional_amount=state.functional_amount,
            rate_source=RATE_SOURCE_DERIVED,
        )

    if state.exchange_rate is not None and state.rate_source != RATE_SOURCE_STORE:
        return RateResolution(
            rate=state.exchange_rate,
            functional_amount=convert(state.amount, state.exchange_rate, minor_unit_places),
            rate_source=state.rate_source or RATE_SOURCE_MANUAL,
        )

    quote = lookup(state.currency, functional_currency, state.transaction_date)
    if quote is None:
        raise MissingRateError(
            from_currency=state.currency,
            to_currency=functional_currency,
            as_of=state.transaction_date.isoformat(),
        )
    return RateResolution(
        rate=quote.rate,
        functional_amount=convert(state.amount, quote.rate, minor_unit_places),
        rate_source=RATE_SOURCE_STORE,
        from_store=True,
        quote=quote,
    )
