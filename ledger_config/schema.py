"""
Posting configuration schema.

``PostingConfig`` is the parsed, validated form of a posting YAML file.  It
is frozen; ``to_posting_policy()`` hands the kernel the subset it consumes.
The account value objects are the kernel's own, so the kernel never needs
to import this package.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.domain.policy import (
    AccountCatalog,
    AccountRef,
    AccountType,
    PostingPolicy,
)

__all__ = [
    "AccountCatalog",
    "AccountRef",
    "AccountType",
    "PostingConfig",
]


@dataclass(frozen=True)
class PostingConfig:
    """A complete posting configuration with its identity."""

    config_id: str
    version: int
    functional_currency: str
    balance_tolerance: Decimal
    minor_unit_places: int
    rate_places: int
    accounts: AccountCatalog
    checksum: str = ""

    def to_posting_policy(self) -> PostingPolicy:
        return PostingPolicy(
            functional_currency=self.functional_currency,
            accounts=self.accounts,
            balance_tolerance=self.balance_tolerance,
            minor_unit_places=self.minor_unit_places,
            rate_places=self.rate_places,
            config_id=f"{self.config_id}@{self.version}",
        )
