"""Services for the cooperative kernel (write side, flush-only)."""

from coop_kernel.services.audit_recorder import FAILED_SUFFIX, AuditRecorder, with_audit
from coop_kernel.services.base import BaseService
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit, fiscal_period_of
from coop_kernel.services.payment_allocator import (
    AccrualTerms,
    PaymentAllocator,
    new_payment_number,
)
from coop_kernel.services.period_closer import PeriodCloser
from coop_kernel.services.savings_service import SavingsService

__all__ = [
    "AccrualTerms",
    "AuditRecorder",
    "BaseService",
    "FAILED_SUFFIX",
    "LedgerPoster",
    "PaymentAllocator",
    "PeriodCloser",
    "SavingsService",
    "credit",
    "debit",
    "fiscal_period_of",
    "new_payment_number",
    "with_audit",
]
