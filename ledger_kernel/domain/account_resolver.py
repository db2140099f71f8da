"""
Account resolver -- maps a transaction to its chart-of-accounts legs.

Responsibility:
    Pure functions selecting debit/credit accounts from the closed
    AccountCatalog.  The caller supplies the linked bank account's currency;
    nothing here performs I/O.

Rules:
    - Expense category -> expense account; unmapped -> default "other"
      account.  Never an error; ``defaulted`` tells the caller to log it.
    - Payment method ``cash`` -> cash account.  Otherwise the bank account's
      OWN currency picks local vs foreign bank, and no linked bank account
      means local.
    - Payments credit the local receivable when the payment currency is the
      functional currency, else the foreign receivable.
    - Invoices debit the same receivable an eventual payment in that
      currency credits, and credit local revenue for a functional-currency
      invoice, else export revenue.
"""

from dataclasses import dataclass

from ledger_kernel.domain.policy import AccountCatalog, AccountRef

CASH_PAYMENT_METHOD = "cash"


@dataclass(frozen=True)
class ExpenseAccounts:
    debit: AccountRef
    credit: AccountRef
    defaulted: bool = False


@dataclass(frozen=True)
class PaymentAccounts:
    cash_leg: AccountRef
    receivable: AccountRef
    swift_fee: AccountRef
    bank_charges: AccountRef


@dataclass(frozen=True)
class InvoiceAccounts:
    receivable: AccountRef
    revenue: AccountRef


def _receivable(
    currency: str, catalog: AccountCatalog, functional_currency: str,
) -> AccountRef:
    if currency == functional_currency:
        return catalog.receivable_local
    return catalog.receivable_foreign


def resolve_cash_account(
    payment_method: str,
    bank_account_currency: str | None,
    catalog: AccountCatalog,
    functional_currency: str,
) -> AccountRef:
    """Cash, local bank or foreign bank, by payment method and bank currency."""
    if payment_method == CASH_PAYMENT_METHOD:
        return catalog.cash
    if bank_account_currency is None or bank_account_currency == functional_currency:
        return catalog.bank_local
    return catalog.bank_foreign


def resolve_expense_accounts(
    category: str | None,
    payment_method: str,
    bank_account_currency: str | None,
    catalog: AccountCatalog,
    functional_currency: str,
) -> ExpenseAccounts:
    mapped = catalog.expense_account_for(category)
    return ExpenseAccounts(
        debit=mapped or catalog.default_expense,
        credit=resolve_cash_account(
            payment_method, bank_account_currency, catalog, functional_currency
        ),
        defaulted=mapped is None,
    )


def resolve_payment_accounts(
    payment_currency: str,
    payment_method: str,
    bank_account_currency: str | None,
    catalog: AccountCatalog,
    functional_currency: str,
) -> PaymentAccounts:
    return PaymentAccounts(
        cash_leg=resolve_cash_account(
            payment_method, bank_account_currency, catalog, functional_currency
        ),
        receivable=_receivable(payment_currency, catalog, functional_currency),
        swift_fee=catalog.swift_fee,
        bank_charges=catalog.bank_charges,
    )


def resolve_invoice_accounts(
    invoice_currency: str,
    catalog: AccountCatalog,
    functional_currency: str,
) -> InvoiceAccounts:
    if invoice_currency == functional_currency:
        revenue = catalog.revenue_local
    else:
        revenue = catalog.revenue_export
    return InvoiceAccounts(
        receivable=_receivable(invoice_currency, catalog, functional_currency),
        revenue=revenue,
    )
