"""
coop_modules.payments
=====================

Responsibility:
    Loan payments at the counter, composite share-plus-loan payments,
    voids, and the member payment-notification workflow.

Architecture:
    Module layer.  Delegates the penalty -> interest -> principal split to
    the kernel ``PaymentAllocator``.
"""

from coop_modules.payments.notifications import PaymentNotificationService
from coop_modules.payments.service import PaymentService

__all__ = ["PaymentNotificationService", "PaymentService"]
