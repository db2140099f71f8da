"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the posting engine must react differently to different failures:
a missing FX rate is an operator problem (add the rate, retry), a concurrent
posting conflict is a retry problem, an imbalanced entry is a bug.  Parsing
message strings to tell them apart is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        transactions.update(expense_id, actor_id, status="paid")
    except MissingRateError as e:
        prompt_for_rate(e.from_currency, e.to_currency, e.as_of)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- MissingRateError
    |
    +-- ExchangeRateError
    |   +-- InvalidExchangeRateError
    |
    +-- PostingError
    |   +-- ImbalancedEntryError
    |   +-- AlreadyPostedError
    |
    +-- ReversalError
    |   +-- EntryNotPostedError
    |   +-- EntryAlreadyReversedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentPostingConflictError
    |
    +-- TransactionError
    |   +-- TransactionNotFoundError
    |   +-- InvalidTransactionError
    |
    +-- AuditError
    |   +-- AuditWriteError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigError
        +-- InvalidConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-----------------------------------
Currency        | INVALID_CURRENCY              | Not a valid ISO 4217 code
                | MISSING_RATE                  | No active rate on/before the date
----------------|-------------------------------|-----------------------------------
Exchange Rate   | INVALID_EXCHANGE_RATE         | Rate is zero/negative/too large
----------------|-------------------------------|-----------------------------------
Posting         | UNBALANCED_ENTRY              | Debits != Credits beyond tolerance
                | ALREADY_POSTED                | Source already has an active entry
----------------|-------------------------------|-----------------------------------
Reversal        | ENTRY_NOT_POSTED              | Can only reverse posted entries
                | ENTRY_ALREADY_REVERSED        | Entry was already reversed
----------------|-------------------------------|-----------------------------------
Concurrency     | CONCURRENT_POSTING_CONFLICT   | Stale version / lost race
----------------|-------------------------------|-----------------------------------
Transaction     | TRANSACTION_NOT_FOUND         | Transaction ID doesn't exist
                | INVALID_TRANSACTION           | Field validation failed
----------------|-------------------------------|-----------------------------------
Audit           | AUDIT_WRITE_FAILED            | Audit row could not be written
----------------|-------------------------------|-----------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Modifying an append-only record
----------------|-------------------------------|-----------------------------------
Config          | INVALID_CONFIG                | Posting configuration is invalid

===============================================================================
HANDLING PATTERNS
===============================================================================

1. MissingRateError aborts the whole state change.  The transaction keeps
   its prior status; supply the rate and retry the exact same call.

2. ConcurrentPostingConflictError means someone else changed the row first.
   Reload and retry with fresh state; never ignore it.

3. AuditWriteError never reaches callers of the posting engine.  The audit
   sink is best-effort and logs ``audit_write_failed`` instead.

4. ImbalancedEntryError is a programming fault.  Surface it, do not retry.

===============================================================================
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Currency-related exceptions


class CurrencyError(LedgerKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


class MissingRateError(CurrencyError):
    """
    No active FX rate exists for the pair on or before the requested date.

    Fatal to the triggering state change.  The message names the pair and
    date so an operator can add the missing rate and retry.
    """

    code: str = "MISSING_RATE"

    def __init__(self, from_currency: str, to_currency: str, as_of: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        super().__init__(
            f"No exchange rate found for {from_currency} to {to_currency} on or before {as_of}"
        )


# Exchange rate exceptions


class ExchangeRateError(LedgerKernelError):
    """Base exception for exchange rate related errors."""

    code: str = "EXCHANGE_RATE_ERROR"


class InvalidExchangeRateError(ExchangeRateError):
    """
    Exchange rate value is invalid (zero, negative, or unreasonably large).
    """

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, rate_value: str, reason: str):
        self.rate_value = rate_value
        self.reason = reason
        super().__init__(f"Invalid exchange rate {rate_value}: {reason}")


# Posting-related exceptions


class PostingError(LedgerKernelError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class ImbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits within tolerance."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}"
        )


class AlreadyPostedError(PostingError):
    """The source document already has an active (unreversed) entry."""

    code: str = "ALREADY_POSTED"

    def __init__(self, source_table: str, source_id: str, journal_entry_id: str):
        self.source_table = source_table
        self.source_id = source_id
        self.journal_entry_id = journal_entry_id
        super().__init__(
            f"{source_table} {source_id} is already posted as entry {journal_entry_id}"
        )


# Reversal-related exceptions


class ReversalError(LedgerKernelError):
    """Base exception for reversal-related errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotPostedError(ReversalError):
    """Cannot reverse an entry that is not posted."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, journal_entry_id: str, status: str):
        self.journal_entry_id = journal_entry_id
        self.status = status
        super().__init__(
            f"Cannot reverse entry {journal_entry_id}: status is {status}, not posted"
        )


class EntryAlreadyReversedError(ReversalError):
    """Entry has already been reversed."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Entry {journal_entry_id} has already been reversed")


# Concurrency-related exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentPostingConflictError(ConcurrencyError):
    """
    A concurrent state change won the race for this transaction.

    The caller must reload the transaction and retry with fresh state.
    """

    code: str = "CONCURRENT_POSTING_CONFLICT"

    def __init__(
        self,
        transaction_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.transaction_id = transaction_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent modification of transaction {transaction_id}{detail}; "
            "reload and retry"
        )


# Transaction-related exceptions


class TransactionError(LedgerKernelError):
    """Base exception for transaction (source document) errors."""

    code: str = "TRANSACTION_ERROR"


class TransactionNotFoundError(TransactionError):
    """Transaction ID doesn't exist."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class InvalidTransactionError(TransactionError):
    """Transaction fields failed validation."""

    code: str = "INVALID_TRANSACTION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid transaction field '{field}': {reason}")


# Audit-related exceptions


class AuditError(LedgerKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditWriteError(AuditError):
    """An audit record could not be persisted."""

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, table_name: str, record_id: str, reason: str):
        self.table_name = table_name
        self.record_id = record_id
        self.reason = reason
        super().__init__(
            f"Audit write failed for {table_name} {record_id}: {reason}"
        )


# Immutability-related exceptions


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Journal entries, journal lines, audit records and auto-journal links are
    append-only; FX rates are never hard-deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigError(LedgerKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """Posting configuration failed validation."""

    code: str = "INVALID_CONFIG"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid posting configuration '{key}': {reason}")
