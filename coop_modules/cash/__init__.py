"""
coop_modules.cash
=================

Responsibility:
    End-of-day cash reconciliation: officer count, secretary review,
    variance posting.
"""

from coop_modules.cash.service import CashReconciliationService

__all__ = ["CashReconciliationService"]
