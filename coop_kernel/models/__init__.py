"""ORM models for the cooperative ledger."""

from coop_kernel.models.accounting_entry import AccountingEntry
from coop_kernel.models.audit_log import AuditLog
from coop_kernel.models.cash_reconciliation import CashReconciliation
from coop_kernel.models.dividend import DividendDistribution, DividendRecipient
from coop_kernel.models.loan import Guarantor, Loan
from coop_kernel.models.loan_balance import LoanBalance
from coop_kernel.models.member import Member
from coop_kernel.models.payment import Payment, PaymentNotification
from coop_kernel.models.saving_transaction import SavingTransaction

__all__ = [
    "AccountingEntry",
    "AuditLog",
    "CashReconciliation",
    "DividendDistribution",
    "DividendRecipient",
    "Guarantor",
    "Loan",
    "LoanBalance",
    "Member",
    "Payment",
    "PaymentNotification",
    "SavingTransaction",
]
