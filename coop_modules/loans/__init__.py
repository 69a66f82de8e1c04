"""
coop_modules.loans
==================

Responsibility:
    Loan origination and terminal handling: application with guarantor
    checks, approval, disbursement, rejection and write-off, plus the
    read-only payoff quote.

Architecture:
    Module layer.  May import from coop_kernel and coop_config.  Must not
    be imported by coop_kernel.
"""

from coop_modules.loans.helpers import accrual_terms, new_loan_number
from coop_modules.loans.service import LoanService

__all__ = ["LoanService", "accrual_terms", "new_loan_number"]
