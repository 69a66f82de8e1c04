"""Small helpers shared by the loan-facing modules."""

from __future__ import annotations

from datetime import date
from uuid import uuid4

from coop_config import LoanPolicy
from coop_kernel.services.payment_allocator import AccrualTerms


def accrual_terms(policy: LoanPolicy) -> AccrualTerms:
    """Kernel accrual terms from the configured loan policy."""
    return AccrualTerms(
        rate_per_month=policy.penalty_rate_per_month,
        days_per_month=policy.penalty_days_per_month,
        day_count_basis=policy.day_count_basis,
    )


def new_loan_number(applied_on: date) -> str:
    return f"LN-{applied_on:%Y%m%d}-{uuid4().hex[:8].upper()}"
