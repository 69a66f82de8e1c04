"""
Chart-of-accounts value types.

The kernel posts to accounts by their role in a transaction (cash, loan
receivable, interest income, ...).  The concrete codes come from
configuration; ``coop_config`` builds a ``ChartOfAccounts`` and module
services hand it to the kernel.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AccountDef:
    code: str
    name: str


@dataclass(frozen=True)
class ChartOfAccounts:
    """Account codes the ledger posts to, keyed by role in the posting."""

    cash: AccountDef
    loan_receivable: AccountDef
    member_savings: AccountDef
    share_capital: AccountDef
    dividends: AccountDef
    interest_income: AccountDef
    penalty_income: AccountDef
    cash_over_short: AccountDef
    bad_debt_expense: AccountDef


DEFAULT_CHART = ChartOfAccounts(
    cash=AccountDef("1001", "Cash"),
    loan_receivable=AccountDef("1201", "Loans Receivable"),
    member_savings=AccountDef("2101", "Member Savings"),
    share_capital=AccountDef("3101", "Share Capital"),
    dividends=AccountDef("3301", "Dividends"),
    interest_income=AccountDef("4101", "Interest Income"),
    penalty_income=AccountDef("4102", "Penalty Income"),
    cash_over_short=AccountDef("5901", "Cash Over and Short"),
    bad_debt_expense=AccountDef("5101", "Bad Debt Expense"),
)
