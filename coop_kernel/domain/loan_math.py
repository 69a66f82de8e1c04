"""
Loan math (``coop_kernel.domain.loan_math``).

Responsibility
--------------
Pure calculations for the loan ledger: reducing-balance installment, simple
daily interest accrual, overdue detection, the 1%-per-month penalty pro-rated
daily, and the payoff quote.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over Decimals and dates.  ZERO I/O.
Functions that look at a loan accept anything satisfying ``LoanView`` (the
ORM model or its DTO).

Invariants enforced
-------------------
* Every returned amount is quantized to 2 places with ROUND_HALF_UP.
* Non-positive day counts, balances, rates or terms yield zero, never an
  error and never a negative amount.
* The penalty is only ever assessed on an overdue loan.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from coop_kernel.db.types import ZERO, round_money
from coop_kernel.domain.lifecycle import LoanStatus

MONTHLY_RATE_DIVISOR = Decimal("1200")
DAY_COUNT_BASIS = 365
PENALTY_RATE_PER_MONTH = Decimal("0.01")
PENALTY_DAYS_PER_MONTH = 30

# Intermediate rate precision (8 places) before the final 2-place rounding
_RATE_QUANTUM = Decimal("0.00000001")


class LoanView(Protocol):
    status: LoanStatus | str
    maturity_date: date | None
    outstanding_balance: Decimal


@dataclass(frozen=True)
class PayoffQuote:
    """Amount required to settle a loan in full on ``as_of``."""

    loan_id: object
    as_of: date
    principal: Decimal
    interest: Decimal
    penalty: Decimal

    @property
    def total(self) -> Decimal:
        return self.principal + self.interest + self.penalty


# =========================================================================
# Calendar helpers
# =========================================================================


def month_end(year: int, month: int) -> date:
    """Last calendar day of (year, month)."""
    return date(year, month, calendar.monthrange(year, month)[1])


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def days_between(from_date: date | None, to_date: date | None) -> int:
    """Calendar-day difference, floored at zero."""
    if from_date is None or to_date is None:
        return 0
    return max((to_date - from_date).days, 0)


# =========================================================================
# Installment and interest
# =========================================================================


def monthly_installment(
    principal: Decimal | None,
    annual_rate_pct: Decimal | None,
    term_months: int | None,
) -> Decimal:
    """
    Reducing-balance installment ``P·r / (1 − (1+r)^−n)``, r = annual/1200.

    Returns ``0.00`` when any input is missing, zero or negative.
    """
    if not principal or not annual_rate_pct or not term_months:
        return ZERO
    if principal <= 0 or annual_rate_pct <= 0 or term_months <= 0:
        return ZERO

    r = (annual_rate_pct / MONTHLY_RATE_DIVISOR).quantize(
        _RATE_QUANTUM, rounding=ROUND_HALF_UP
    )
    factor = Decimal(1) - (Decimal(1) + r) ** (-term_months)
    return round_money(principal * r / factor)


def total_interest(
    principal: Decimal,
    annual_rate_pct: Decimal,
    term_months: int,
) -> Decimal:
    """Interest paid over the full schedule: installment·n − principal."""
    installment = monthly_installment(principal, annual_rate_pct, term_months)
    if installment == ZERO:
        return ZERO
    return round_money(installment * term_months - principal)


def accrued_interest(
    outstanding_balance: Decimal,
    annual_rate_pct: Decimal,
    from_date: date | None,
    as_of: date | None,
    day_count_basis: int = DAY_COUNT_BASIS,
) -> Decimal:
    """Simple daily interest ``outstanding · rate/100 · days/basis``."""
    days = days_between(from_date, as_of)
    if days == 0 or outstanding_balance <= 0 or annual_rate_pct <= 0:
        return ZERO
    return round_money(
        outstanding_balance * annual_rate_pct * days / (Decimal(100) * day_count_basis)
    )


# =========================================================================
# Overdue and penalty
# =========================================================================


def is_overdue(loan: LoanView, today: date) -> bool:
    """ACTIVE, past a set maturity date, with a positive balance."""
    return (
        LoanStatus(loan.status) == LoanStatus.ACTIVE
        and loan.maturity_date is not None
        and today > loan.maturity_date
        and loan.outstanding_balance > 0
    )


def is_past_maturity(loan: LoanView, today: date) -> bool:
    """Like ``is_overdue`` but also true for loans already DEFAULTED."""
    return (
        LoanStatus(loan.status) in (LoanStatus.ACTIVE, LoanStatus.DEFAULTED)
        and loan.maturity_date is not None
        and today > loan.maturity_date
        and loan.outstanding_balance > 0
    )


def days_overdue(loan: LoanView, today: date) -> int:
    if not is_past_maturity(loan, today):
        return 0
    return days_between(loan.maturity_date, today)


def daily_penalty_rate(
    rate_per_month: Decimal = PENALTY_RATE_PER_MONTH,
    days_per_month: int = PENALTY_DAYS_PER_MONTH,
) -> Decimal:
    return (rate_per_month / days_per_month).quantize(
        _RATE_QUANTUM, rounding=ROUND_HALF_UP
    )


def penalty_for_days(
    outstanding_balance: Decimal,
    days: int,
    rate_per_month: Decimal = PENALTY_RATE_PER_MONTH,
    days_per_month: int = PENALTY_DAYS_PER_MONTH,
) -> Decimal:
    if days <= 0 or outstanding_balance <= 0:
        return ZERO
    return round_money(
        outstanding_balance * daily_penalty_rate(rate_per_month, days_per_month) * days
    )


def penalty(
    loan: LoanView,
    today: date,
    rate_per_month: Decimal = PENALTY_RATE_PER_MONTH,
    days_per_month: int = PENALTY_DAYS_PER_MONTH,
) -> Decimal:
    """Penalty on an overdue loan: ``outstanding · 0.01/30 · days_overdue``."""
    if not is_overdue(loan, today):
        return ZERO
    return penalty_for_days(
        loan.outstanding_balance,
        days_overdue(loan, today),
        rate_per_month,
        days_per_month,
    )


def assessable_penalty(
    loan: LoanView,
    assessed_through: date | None,
    as_of: date,
    rate_per_month: Decimal = PENALTY_RATE_PER_MONTH,
    days_per_month: int = PENALTY_DAYS_PER_MONTH,
) -> Decimal:
    """
    Penalty not yet assessed between ``assessed_through`` and ``as_of``.

    Days before maturity never attract penalty, and days already assessed
    are not counted again.
    """
    if not is_past_maturity(loan, as_of):
        return ZERO
    start = loan.maturity_date
    if assessed_through is not None and assessed_through > start:
        start = assessed_through
    return penalty_for_days(
        loan.outstanding_balance,
        days_between(start, as_of),
        rate_per_month,
        days_per_month,
    )


# =========================================================================
# Amounts due
# =========================================================================


class AccruingLoanView(LoanView, Protocol):
    id: object
    interest_rate: Decimal
    start_date: date | None
    interest_accrued: Decimal
    interest_accrued_through: date | None
    penalty_accrued: Decimal
    penalty_assessed_through: date | None


def interest_accrual_start(loan: AccruingLoanView) -> date | None:
    """Date from which unbooked interest runs: the last accrual, else the start."""
    return loan.interest_accrued_through or loan.start_date


def interest_due(
    loan: AccruingLoanView,
    as_of: date,
    day_count_basis: int = DAY_COUNT_BASIS,
) -> Decimal:
    """Unpaid booked interest plus interest accrued since the last accrual."""
    return round_money(
        (loan.interest_accrued or ZERO)
        + accrued_interest(
            loan.outstanding_balance,
            loan.interest_rate,
            interest_accrual_start(loan),
            as_of,
            day_count_basis,
        )
    )


def penalty_due(
    loan: AccruingLoanView,
    as_of: date,
    rate_per_month: Decimal = PENALTY_RATE_PER_MONTH,
    days_per_month: int = PENALTY_DAYS_PER_MONTH,
) -> Decimal:
    """Unpaid assessed penalty plus penalty assessable through ``as_of``."""
    return round_money(
        (loan.penalty_accrued or ZERO)
        + assessable_penalty(
            loan,
            loan.penalty_assessed_through,
            as_of,
            rate_per_month,
            days_per_month,
        )
    )


def payoff_quote(
    loan: AccruingLoanView,
    as_of: date,
    day_count_basis: int = DAY_COUNT_BASIS,
    rate_per_month: Decimal = PENALTY_RATE_PER_MONTH,
    days_per_month: int = PENALTY_DAYS_PER_MONTH,
) -> PayoffQuote:
    """Amount that settles the loan in full on ``as_of``."""
    return PayoffQuote(
        loan_id=loan.id,
        as_of=as_of,
        principal=round_money(loan.outstanding_balance),
        interest=interest_due(loan, as_of, day_count_basis),
        penalty=penalty_due(loan, as_of, rate_per_month, days_per_month),
    )
