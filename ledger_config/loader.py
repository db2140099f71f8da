"""
Configuration loader (``ledger_config.loader``).

Responsibility
--------------
Loads a posting YAML file and parses it into the frozen
``ledger_config.schema.PostingConfig``.  Runtime callers use
``ledger_config.get_active_config()``; tests call ``load_posting_config``
directly with their own files.

Invariants enforced
-------------------
* Every validation failure raises ``InvalidConfigError`` naming the key.
  Required keys have no silent defaults.
* The functional currency is a valid ISO 4217 code.
* The balance tolerance is a non-negative decimal.
* Fixed account slots use distinct codes; category names are unique
  (case-insensitive, since lookup is case-insensitive).
* ``compute_checksum`` is a deterministic SHA-256 of the parsed YAML.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import AccountCatalog, AccountRef, AccountType, PostingConfig
from ledger_kernel.db.types import is_valid_currency
from ledger_kernel.exceptions import InvalidConfigError

FIXED_ACCOUNT_SLOTS = (
    "cash",
    "bank_local",
    "bank_foreign",
    "receivable_local",
    "receivable_foreign",
    "swift_fee",
    "bank_charges",
    "revenue_local",
    "revenue_export",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file.

    Raises:
        FileNotFoundError: if the file does not exist.
        InvalidConfigError: if the file is not a YAML mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise InvalidConfigError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _require(data: dict[str, Any], key: str, context: str = "") -> Any:
    if key not in data or data[key] is None:
        raise InvalidConfigError(f"{context}{key}", "required key is missing")
    return data[key]


def parse_account(data: Any, key: str, default_type: AccountType) -> AccountRef:
    if not isinstance(data, dict):
        raise InvalidConfigError(key, "account must be a mapping with code and name")
    code = str(_require(data, "code", f"{key}.")).strip()
    name = str(_require(data, "name", f"{key}.")).strip()
    if not code:
        raise InvalidConfigError(f"{key}.code", "must not be empty")
    try:
        account_type = AccountType(data.get("type", default_type.value))
    except ValueError:
        raise InvalidConfigError(f"{key}.type", f"unknown account type {data.get('type')!r}") from None
    return AccountRef(code=code, name=name, account_type=account_type)


def _parse_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidConfigError(key, f"not a decimal: {value!r}") from None


def _parse_places(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidConfigError(key, "must be a non-negative integer")
    return value


def parse_categories(entries: Any) -> tuple[tuple[str, AccountRef], ...]:
    if entries is None:
        return ()
    if not isinstance(entries, list):
        raise InvalidConfigError("expense_categories", "must be a list")

    seen: set[str] = set()
    parsed = []
    for index, entry in enumerate(entries):
        key = f"expense_categories[{index}]"
        if not isinstance(entry, dict):
            raise InvalidConfigError(key, "must be a mapping")
        category = str(_require(entry, "category", f"{key}.")).strip()
        folded = category.casefold()
        if folded in seen:
            raise InvalidConfigError(key, f"duplicate category {category!r}")
        seen.add(folded)
        parsed.append((category, parse_account(entry, key, AccountType.EXPENSE)))
    return tuple(parsed)


def parse_posting_config(data: dict[str, Any], checksum: str = "") -> PostingConfig:
    """
    Parse and validate a posting configuration dict.

    Raises:
        InvalidConfigError: on any missing or invalid value.
    """
    functional_currency = str(_require(data, "functional_currency")).upper().strip()
    if not is_valid_currency(functional_currency):
        raise InvalidConfigError(
            "functional_currency", f"{functional_currency!r} is not an ISO 4217 code",
        )

    tolerance = _parse_decimal("balance_tolerance", data.get("balance_tolerance", "0.01"))
    if not tolerance.is_finite() or tolerance < 0:
        raise InvalidConfigError("balance_tolerance", "must be a non-negative decimal")

    accounts_data = _require(data, "accounts")
    if not isinstance(accounts_data, dict):
        raise InvalidConfigError("accounts", "must be a mapping")

    fixed = {
        slot: parse_account(_require(accounts_data, slot, "accounts."), f"accounts.{slot}", AccountType.ASSET)
        for slot in FIXED_ACCOUNT_SLOTS
    }
    default_expense = parse_account(
        _require(data, "default_expense_account"),
        "default_expense_account",
        AccountType.EXPENSE,
    )

    codes: dict[str, str] = {}
    for slot, account in [*fixed.items(), ("default_expense_account", default_expense)]:
        if account.code in codes:
            raise InvalidConfigError(
                slot, f"code {account.code} already used by {codes[account.code]}",
            )
        codes[account.code] = slot

    catalog = AccountCatalog(
        category_accounts=parse_categories(data.get("expense_categories")),
        default_expense=default_expense,
        **fixed,
    )

    return PostingConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        functional_currency=functional_currency,
        balance_tolerance=tolerance,
        minor_unit_places=_parse_places(data, "minor_unit_places", 2),
        rate_places=_parse_places(data, "rate_places", 6),
        accounts=catalog,
        checksum=checksum,
    )


def load_posting_config(path: Path | str) -> PostingConfig:
    """Load, validate and checksum a posting configuration file."""
    data = load_yaml_file(Path(path))
    return parse_posting_config(data, checksum=compute_checksum(data))
