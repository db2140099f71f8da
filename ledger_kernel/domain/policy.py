"""
Posting policy -- the kernel-side view of configuration.

Responsibility:
    Frozen value objects describing the functional currency, precision and
    the closed account catalog.  ``ledger_config`` builds these from YAML;
    the kernel never reads configuration files itself.

Architecture position:
    Kernel > Domain.  Pure data, zero I/O.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


@dataclass(frozen=True)
class AccountRef:
    """A chart-of-accounts entry as it appears on a journal line."""

    code: str
    name: str
    account_type: AccountType

    def __str__(self) -> str:
        return f"{self.code} {self.name}"


@dataclass(frozen=True)
class AccountCatalog:
    """
    Closed mapping from expense categories, payment legs and invoice legs
    to accounts.

    Category lookup is case-insensitive on the trimmed category name.
    Unmapped categories resolve to ``default_expense``.
    """

    category_accounts: tuple[tuple[str, AccountRef], ...]
    default_expense: AccountRef
    cash: AccountRef
    bank_local: AccountRef
    bank_foreign: AccountRef
    receivable_local: AccountRef
    receivable_foreign: AccountRef
    swift_fee: AccountRef
    bank_charges: AccountRef
    revenue_local: AccountRef
    revenue_export: AccountRef

    def expense_account_for(self, category: str | None) -> AccountRef | None:
        """Return the mapped account, or None when the category is unmapped."""
        if not category:
            return None
        wanted = category.strip().casefold()
        for name, account in self.category_accounts:
            if name.casefold() == wanted:
                return account
        return None

    def all_accounts(self) -> tuple[AccountRef, ...]:
        fixed = (
            self.default_expense,
            self.cash,
            self.bank_local,
            self.bank_foreign,
            self.receivable_local,
            self.receivable_foreign,
            self.swift_fee,
            self.bank_charges,
            self.revenue_local,
            self.revenue_export,
        )
        return tuple(account for _, account in self.category_accounts) + fixed


@dataclass(frozen=True)
class PostingPolicy:
    """Everything the posting pipeline needs to know about the ledger."""

    functional_currency: str
    accounts: AccountCatalog
    balance_tolerance: Decimal = Decimal("0.01")
    minor_unit_places: int = 2
    rate_places: int = 6
    config_id: str = field(default="default", compare=False)

    def is_foreign(self, currency: str) -> bool:
        return currency != self.functional_currency
