"""Read-only query selectors."""

from coop_kernel.selectors.base import BaseSelector
from coop_kernel.selectors.ledger_selector import LedgerSelector
from coop_kernel.selectors.loan_selector import LoanSelector, PaymentTotals
from coop_kernel.selectors.member_selector import MemberSelector

__all__ = [
    "BaseSelector",
    "LedgerSelector",
    "LoanSelector",
    "MemberSelector",
    "PaymentTotals",
]
