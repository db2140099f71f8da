"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A posted journal entry is history.  Editing or deleting a source transaction
must produce a NEW mirrored entry; it must never rewrite the old one.  The
same holds for the audit trail and for the links that tie entries to their
source documents.

SQLAlchemy fires mapper events before UPDATE/DELETE SQL is emitted.  The
listeners below inspect the target and raise ImmutabilityViolationError,
which aborts the flush before the database is touched:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|---------------------------------------------------------
JournalEntry        | No UPDATE/DELETE once status = posted
JournalEntryLine    | No UPDATE/DELETE while the parent entry is posted
AuditRecord         | Append-only from creation
AutoJournalLink     | Append-only from creation
FxRate              | Never deleted; rate must stay positive and sane

updated_at/updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must stage a forbidden write can call
unregister_immutability_listeners() and re-register afterwards.

===============================================================================
"""

from decimal import Decimal, InvalidOperation

from sqlalchemy import event, inspect

from ledger_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidExchangeRateError,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})

MAX_EXCHANGE_RATE = Decimal("1000000")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _was_posted(target) -> bool:
    """True when the entry was already posted before the pending change."""
    from sqlalchemy.orm.attributes import get_history

    from ledger_kernel.models.journal import JournalEntryStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0] == JournalEntryStatus.POSTED
    if not status_history.added:
        return target.status == JournalEntryStatus.POSTED
    # DRAFT -> POSTED transition is the posting itself
    return False


def _check_journal_entry_immutability(mapper, connection, target):
    if not _was_posted(target):
        return

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            _blocked(
                "JournalEntry",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on posted journal entry",
                field=attr.key,
            )


def _check_journal_entry_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    if target.status == JournalEntryStatus.POSTED:
        _blocked(
            "JournalEntry",
            target.id,
            "DELETE",
            "Posted journal entries cannot be deleted; post a reversal instead",
        )


def _parent_posted(line) -> bool:
    from ledger_kernel.models.journal import JournalEntryStatus

    return line.entry is not None and line.entry.status == JournalEntryStatus.POSTED


def _check_journal_line_immutability(mapper, connection, target):
    if _parent_posted(target):
        _blocked(
            "JournalEntryLine",
            target.id,
            "UPDATE",
            "Journal lines cannot be modified after parent entry is posted",
        )


def _check_journal_line_delete(mapper, connection, target):
    if _parent_posted(target):
        _blocked(
            "JournalEntryLine",
            target.id,
            "DELETE",
            "Journal lines cannot be deleted after parent entry is posted",
        )


def _check_append_only_update(mapper, connection, target):
    _blocked(
        type(target).__name__,
        target.id,
        "UPDATE",
        f"{type(target).__name__} rows are append-only and cannot be modified",
    )


def _check_append_only_delete(mapper, connection, target):
    _blocked(
        type(target).__name__,
        target.id,
        "DELETE",
        f"{type(target).__name__} rows are append-only and cannot be deleted",
    )


def validate_exchange_rate_value(rate_value, rate_id: str | None = None) -> Decimal:
    """
    Validate that an exchange rate is a positive, sane Decimal.

    Raises:
        InvalidExchangeRateError: If rate is missing, non-numeric, zero,
            negative or above MAX_EXCHANGE_RATE.
    """
    if rate_value is None:
        raise InvalidExchangeRateError(rate_value="None", reason="Exchange rate cannot be null")

    if not isinstance(rate_value, Decimal):
        try:
            rate_value = Decimal(str(rate_value))
        except InvalidOperation:
            raise InvalidExchangeRateError(
                rate_value=str(rate_value),
                reason="Exchange rate must be a valid number",
            )

    if not rate_value.is_finite() or rate_value <= Decimal("0"):
        raise InvalidExchangeRateError(
            rate_value=str(rate_value),
            reason="Exchange rate must be positive (greater than zero)",
        )

    if rate_value > MAX_EXCHANGE_RATE:
        raise InvalidExchangeRateError(
            rate_value=str(rate_value),
            reason=f"Exchange rate exceeds maximum allowed value ({MAX_EXCHANGE_RATE})",
        )
    return rate_value


def _check_fx_rate_value(mapper, connection, target):
    validate_exchange_rate_value(target.rate, str(target.id) if target.id else "new")


def _check_fx_rate_delete(mapper, connection, target):
    _blocked(
        "FxRate",
        target.id,
        "DELETE",
        "FX rates are never deleted; set is_active=False to retire a rate",
        from_currency=target.from_currency,
        to_currency=target.to_currency,
    )


def _listener_table():
    from ledger_kernel.models.audit_record import AuditRecord
    from ledger_kernel.models.auto_journal_link import AutoJournalLink
    from ledger_kernel.models.fx_rate import FxRate
    from ledger_kernel.models.journal import JournalEntry, JournalEntryLine

    return [
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalEntryLine, "before_update", _check_journal_line_immutability),
        (JournalEntryLine, "before_delete", _check_journal_line_delete),
        (AuditRecord, "before_update", _check_append_only_update),
        (AuditRecord, "before_delete", _check_append_only_delete),
        (AutoJournalLink, "before_update", _check_append_only_update),
        (AutoJournalLink, "before_delete", _check_append_only_delete),
        (FxRate, "before_insert", _check_fx_rate_value),
        (FxRate, "before_update", _check_fx_rate_value),
        (FxRate, "before_delete", _check_fx_rate_delete),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability listeners.  Idempotent.

    Call after the models are importable and before any posting work.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that deliberately stage a violation.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
