"""
Waterfall payment allocation (``coop_kernel.domain.allocation``).

Responsibility
--------------
Split an incoming loan payment into penalty, interest and principal in strict
priority order.  Pure function; the kernel ``PaymentAllocator`` service feeds
it the dues and applies the result to the loan.

Invariants enforced
-------------------
* ``penalty + interest + principal == amount`` exactly at 2-decimal scale.
* Each component is non-negative and never exceeds its due.
* Whatever remains after penalty and interest goes to principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from coop_kernel.db.types import ZERO, round_money


@dataclass(frozen=True)
class Allocation:
    """Result of splitting one payment amount."""

    amount: Decimal
    penalty: Decimal
    interest: Decimal
    principal: Decimal

    def __post_init__(self) -> None:
        if self.penalty + self.interest + self.principal != self.amount:
            raise ValueError(
                f"Allocation components do not sum to amount {self.amount}"
            )


def allocate_waterfall(
    amount: Decimal,
    penalty_due: Decimal,
    interest_due: Decimal,
) -> Allocation:
    """
    Apply ``amount`` to penalty, then interest, then principal.

    Preconditions:
        ``amount > 0``; dues are non-negative.  Callers validate the amount
        before calling; a non-positive amount raises ``ValueError``.
    """
    amount = round_money(amount)
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")

    penalty_due = max(round_money(penalty_due), ZERO)
    interest_due = max(round_money(interest_due), ZERO)

    to_penalty = min(amount, penalty_due)
    remaining = amount - to_penalty
    to_interest = min(remaining, interest_due)
    to_principal = remaining - to_interest

    return Allocation(
        amount=amount,
        penalty=to_penalty,
        interest=to_interest,
        principal=to_principal,
    )
