"""
TransactionService -- create, update and delete expenses, payments and invoices.

Responsibility:
    The in-process source of TransactionEvents.  Each call validates the
    input, keeps the (exchange_rate, functional_amount) pair consistent
    with the calculation method, persists the change, hands the resulting
    event to PostingEngine and audits the transaction.

Architecture position:
    Kernel > Services -- outermost kernel entry point for source documents.

Invariants enforced:
    - Every call runs inside one SAVEPOINT.  If posting fails (for example
      MissingRateError) the transaction row is left exactly as it was:
      a transaction is never marked paid without its journal entry.
    - The row is locked (``SELECT ... FOR UPDATE``) before it is read, so
      concurrent state changes on one transaction are serialized.
    - Optional ``expected_version`` gives callers optimistic concurrency;
      the ORM version column catches lost updates that slip past it.
    - Functional-currency transactions always carry rate 1 and
      functional_amount == amount.

Failure modes:
    - TransactionNotFoundError on update of a missing row.  Delete of a
      missing row is a no-op.
    - InvalidTransactionError / InvalidCurrencyError /
      InvalidExchangeRateError on bad input.
    - ConcurrentPostingConflictError on a version mismatch.
    - Anything PostingEngine raises.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.db.immutability import validate_exchange_rate_value
from ledger_kernel.db.types import round_money, round_rate, to_decimal, validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    CalculationMethod,
    Operation,
    TransactionEvent,
    TransactionState,
)
from ledger_kernel.domain.fx import RATE_SOURCE_MANUAL, derive_computed_fields
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.exceptions import (
    ConcurrentPostingConflictError,
    InvalidTransactionError,
    TransactionNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_record import AuditOperation
from ledger_kernel.models.transaction import (
    PaymentMethod,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from ledger_kernel.services.audit_service import AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.posting_engine import PostingEngine, PostingOutcome

logger = get_logger("services.transaction")

ZERO = Decimal("0")

UPDATABLE_FIELDS = frozenset({
    "transaction_date",
    "description",
    "category",
    "counterparty",
    "amount",
    "currency",
    "payment_method",
    "bank_account_id",
    "swift_fee",
    "bank_charges",
    "status",
    "calculation_method",
    "exchange_rate",
    "functional_amount",
})


@dataclass(frozen=True)
class TransactionChange:
    """Result of a create/update/delete: the stored state and the journal outcome."""

    state: TransactionState | None
    outcome: PostingOutcome


def _enum_value(enum_cls, field: str, value: Any) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidTransactionError(field, f"'{value}' is not one of: {allowed}") from None


def _money(field: str, value: Any, places: int) -> Decimal:
    try:
        amount = to_decimal(value)
    except (TypeError, ArithmeticError) as exc:
        raise InvalidTransactionError(field, str(exc)) from None
    if not amount.is_finite():
        raise InvalidTransactionError(field, "must be a finite number")
    return round_money(amount, places)


class TransactionService(BaseService):
    """
    Write API for transactions.

    Usage:
        service = TransactionService(session, policy, clock)
        change = service.create(kind="expense", number="EXP-2024-001", ...)
        change = service.update(change.state.id, actor_id, status="paid")
    """

    def __init__(
        self,
        session: Session,
        policy: PostingPolicy,
        clock: Clock | None = None,
        engine: PostingEngine | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._audit = AuditService(session, self._clock)
        self._engine = engine or PostingEngine(session, policy, self._clock, self._audit)

    # ------------------------------------------------------------------
    # Validation and computed fields
    # ------------------------------------------------------------------

    def _normalize(self, values: dict[str, Any], rate_supplied: bool) -> dict[str, Any]:
        places = self._policy.minor_unit_places

        values["kind"] = _enum_value(TransactionKind, "kind", values["kind"])
        values["status"] = _enum_value(TransactionStatus, "status", values["status"])
        values["payment_method"] = _enum_value(
            PaymentMethod, "payment_method", values["payment_method"],
        )
        values["calculation_method"] = _enum_value(
            CalculationMethod, "calculation_method", values["calculation_method"],
        )
        values["currency"] = validate_currency(values["currency"])

        amount = _money("amount", values["amount"], places)
        if amount <= ZERO:
            raise InvalidTransactionError("amount", "must be greater than zero")
        values["amount"] = amount

        for fee in ("swift_fee", "bank_charges"):
            fee_value = _money(fee, values.get(fee) or ZERO, places)
            if fee_value < ZERO:
                raise InvalidTransactionError(fee, "must not be negative")
            values[fee] = fee_value
            if fee_value and values["kind"] == TransactionKind.INVOICE:
                raise InvalidTransactionError(fee, "only payments carry deductions")
        if values["swift_fee"] + values["bank_charges"] > amount:
            raise InvalidTransactionError("bank_charges", "deductions exceed the payment amount")

        if values.get("functional_amount") is not None:
            values["functional_amount"] = _money(
                "functional_amount", values["functional_amount"], places,
            )
            if values["functional_amount"] <= ZERO:
                raise InvalidTransactionError("functional_amount", "must be greater than zero")

        if values.get("exchange_rate") is not None:
            values["exchange_rate"] = round_rate(
                validate_exchange_rate_value(values["exchange_rate"]),
                self._policy.rate_places,
            )
            if rate_supplied:
                values["rate_source"] = RATE_SOURCE_MANUAL

        foreign = self._policy.is_foreign(values["currency"])
        if (
            foreign
            and values["calculation_method"] == CalculationMethod.FUNCTIONAL_DRIVES_RATE
            and values.get("functional_amount") is None
        ):
            raise InvalidTransactionError(
                "functional_amount",
                "required when calculation_method is functional_drives_rate",
            )
        return values

    def _apply_computed(self, values: dict[str, Any], rate_context_changed: bool) -> None:
        rate, functional, source = derive_computed_fields(
            amount=values["amount"],
            currency=values["currency"],
            calculation_method=values["calculation_method"],
            exchange_rate=values.get("exchange_rate"),
            functional_amount=values.get("functional_amount"),
            rate_source=values.get("rate_source"),
            functional_currency=self._policy.functional_currency,
            rate_context_changed=rate_context_changed,
            minor_unit_places=self._policy.minor_unit_places,
            rate_places=self._policy.rate_places,
        )
        values["exchange_rate"] = rate
        values["functional_amount"] = functional
        values["rate_source"] = source

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    def _lock(self, transaction_id: UUID) -> Transaction | None:
        return self.session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _check_version(txn: Transaction, expected_version: int | None) -> None:
        if expected_version is not None and txn.version != expected_version:
            raise ConcurrentPostingConflictError(
                str(txn.id),
                expected_version=expected_version,
                actual_version=txn.version,
            )

    def _flush(self, transaction_id: UUID) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "transaction_version_conflict",
                extra={"transaction_id": str(transaction_id)},
            )
            raise ConcurrentPostingConflictError(str(transaction_id)) from exc

    def get(self, transaction_id: UUID) -> TransactionState:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return TransactionState.from_model(txn)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(
        self,
        *,
        kind: str,
        number: str,
        transaction_date: date,
        amount: Decimal,
        currency: str,
        actor_id: UUID,
        description: str = "",
        category: str | None = None,
        counterparty: str | None = None,
        payment_method: str = PaymentMethod.BANK_TRANSFER.value,
        bank_account_id: UUID | None = None,
        swift_fee: Decimal = ZERO,
        bank_charges: Decimal = ZERO,
        status: str = TransactionStatus.PENDING.value,
        calculation_method: str = CalculationMethod.AMOUNT_DRIVES_FUNCTIONAL.value,
        exchange_rate: Decimal | None = None,
        functional_amount: Decimal | None = None,
    ) -> TransactionChange:
        """Insert a transaction.  Inserting it as paid posts immediately."""
        values = self._normalize(
            {
                "kind": kind,
                "transaction_date": transaction_date,
                "description": description,
                "category": category,
                "counterparty": counterparty,
                "amount": amount,
                "currency": currency,
                "payment_method": payment_method,
                "bank_account_id": bank_account_id,
                "swift_fee": swift_fee,
                "bank_charges": bank_charges,
                "status": status,
                "calculation_method": calculation_method,
                "exchange_rate": exchange_rate,
                "functional_amount": functional_amount,
                "rate_source": None,
            },
            rate_supplied=exchange_rate is not None,
        )
        self._apply_computed(values, rate_context_changed=False)

        duplicate = self.session.execute(
            select(Transaction.id).where(Transaction.number == number)
        ).scalar_one_or_none()
        if duplicate is not None:
            raise InvalidTransactionError("number", f"'{number}' already exists")

        with LogContext.bind(actor_id=str(actor_id)):
            with self.session.begin_nested():
                txn = Transaction(id=uuid4(), number=number, created_by_id=actor_id, **values)
                self.session.add(txn)
                self._flush(txn.id)

                with LogContext.bind(transaction_id=str(txn.id)):
                    new = TransactionState.from_model(txn)
                    outcome = self._engine.handle(
                        TransactionEvent(Operation.INSERT, None, new, actor_id)
                    )
                    final = TransactionState.from_model(txn)
                    self._audit.record(
                        "transactions", txn.id, AuditOperation.CREATE,
                        None, final.to_audit_dict(), actor_id,
                        description=f"{final.kind} {final.number} created",
                    )
                    logger.info(
                        "transaction_created",
                        extra={
                            "number": number,
                            "kind": final.kind,
                            "status": final.status,
                            "posted_entry_number": outcome.posted_entry_number,
                        },
                    )
        return TransactionChange(state=final, outcome=outcome)

    def update(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
        **changes: Any,
    ) -> TransactionChange:
        """
        Apply ``changes`` to a transaction and post whatever the transition
        implies.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidTransactionError(
                sorted(unknown)[0], "field cannot be updated",
            )

        with LogContext.bind(actor_id=str(actor_id), transaction_id=str(transaction_id)):
            with self.session.begin_nested():
                txn = self._lock(transaction_id)
                if txn is None:
                    raise TransactionNotFoundError(str(transaction_id))
                self._check_version(txn, expected_version)

                prior = TransactionState.from_model(txn)
                values = {field: getattr(prior, field) for field in UPDATABLE_FIELDS}
                values["kind"] = prior.kind
                values["rate_source"] = prior.rate_source
                values.update(changes)

                # A rate quoted against the old currency never carries over
                if (
                    "exchange_rate" not in changes
                    and validate_currency(values["currency"]) != prior.currency
                ):
                    values["exchange_rate"] = None
                    values["rate_source"] = None
                    if "functional_amount" not in changes:
                        values["functional_amount"] = None

                values = self._normalize(values, rate_supplied="exchange_rate" in changes)
                # Store rates on a paid transaction must match its active entry
                rate_context_changed = values["status"] != TransactionStatus.PAID and (
                    values["currency"] != prior.currency
                    or values["transaction_date"] != prior.transaction_date
                )
                self._apply_computed(values, rate_context_changed)

                for field, value in values.items():
                    if field == "kind":
                        continue
                    if getattr(txn, field) != value:
                        setattr(txn, field, value)
                if self.session.is_modified(txn):
                    txn.updated_by_id = actor_id
                self._flush(transaction_id)

                new = TransactionState.from_model(txn)
                outcome = self._engine.handle(
                    TransactionEvent(Operation.UPDATE, prior, new, actor_id)
                )
                final = TransactionState.from_model(txn)
                self._audit.record(
                    "transactions", txn.id, AuditOperation.UPDATE,
                    prior.to_audit_dict(), final.to_audit_dict(), actor_id,
                    description=f"{final.kind} {final.number} updated",
                )
                logger.info(
                    "transaction_updated",
                    extra={
                        "number": final.number,
                        "prior_status": prior.status,
                        "status": final.status,
                        "posted_entry_number": outcome.posted_entry_number,
                        "reversal_entry_number": outcome.reversal_entry_number,
                    },
                )
        return TransactionChange(state=final, outcome=outcome)

    def delete(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> TransactionChange:
        """
        Delete a transaction, reversing its active entry if it was paid.

        Deleting a transaction that no longer exists does nothing.
        """
        with LogContext.bind(actor_id=str(actor_id), transaction_id=str(transaction_id)):
            with self.session.begin_nested():
                txn = self._lock(transaction_id)
                if txn is None:
                    logger.info("transaction_delete_noop")
                    return TransactionChange(
                        state=None,
                        outcome=PostingOutcome(transaction_id=transaction_id),
                    )
                self._check_version(txn, expected_version)

                prior = TransactionState.from_model(txn)
                self.session.delete(txn)
                self._flush(transaction_id)

                outcome = self._engine.handle(
                    TransactionEvent(Operation.DELETE, prior, None, actor_id)
                )
                self._audit.record(
                    "transactions", transaction_id, AuditOperation.DELETE,
                    prior.to_audit_dict(), None, actor_id,
                    description=f"{prior.kind} {prior.number} deleted",
                )
                logger.info(
                    "transaction_deleted",
                    extra={
                        "number": prior.number,
                        "reversal_entry_number": outcome.reversal_entry_number,
                    },
                )
        return TransactionChange(state=None, outcome=outcome)
