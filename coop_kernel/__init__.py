"""
Cooperative Ledger Kernel

The financial core of a member-owned savings-and-loan cooperative:
- Loan interest accrual, installment and penalty math
- Waterfall payment allocation with atomic balance updates
- Idempotent monthly loan balance snapshots
- Append-only audit trail for privileged mutations
"""

__version__ = "0.1.0"
