"""
Dividend math (``coop_kernel.domain.dividend_math``).

Responsibility
--------------
Per-member dividend and average-return computation, and the roll-up of
recipient rows into distribution totals.

Invariants enforced
-------------------
* Each member's dividend, average return and total are rounded to 2 places
  individually; ``total == dividend + average_return`` exactly.
* Distribution totals are sums of the already-rounded recipient amounts, so
  ``Σ total == total_dividend + total_average_return`` with no drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from coop_kernel.db.types import ZERO, round_money

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class MemberDividend:
    member_id: UUID
    share_capital: Decimal
    interest_paid: Decimal
    dividend_amount: Decimal
    average_return_amount: Decimal

    @property
    def total_amount(self) -> Decimal:
        return self.dividend_amount + self.average_return_amount


@dataclass(frozen=True)
class DividendTotals:
    member_count: int
    total_dividend_amount: Decimal
    total_average_return_amount: Decimal

    @property
    def grand_total(self) -> Decimal:
        return self.total_dividend_amount + self.total_average_return_amount


def compute_member_dividend(
    member_id: UUID,
    share_capital: Decimal,
    interest_paid: Decimal,
    dividend_rate_pct: Decimal,
    average_return_rate_pct: Decimal,
) -> MemberDividend:
    """Dividend on share capital plus average return on interest paid."""
    share_capital = share_capital or ZERO
    interest_paid = interest_paid or ZERO
    return MemberDividend(
        member_id=member_id,
        share_capital=round_money(share_capital),
        interest_paid=round_money(interest_paid),
        dividend_amount=round_money(share_capital * dividend_rate_pct / _HUNDRED),
        average_return_amount=round_money(
            interest_paid * average_return_rate_pct / _HUNDRED
        ),
    )


def summarize(recipients: Iterable[MemberDividend]) -> DividendTotals:
    count = 0
    total_dividend = ZERO
    total_average_return = ZERO
    for r in recipients:
        count += 1
        total_dividend += r.dividend_amount
        total_average_return += r.average_return_amount
    return DividendTotals(
        member_count=count,
        total_dividend_amount=total_dividend,
        total_average_return_amount=total_average_return,
    )
