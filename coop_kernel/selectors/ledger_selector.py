"""
Module: coop_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the general ledger (accounting
    entries), cash reconciliations and dividend distributions.  Account
    balances are derived from AccountingEntry rows at query time.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - account_balance() counts entries dated on or before ``through``.
    - pending_reconciliations() lists only non-zero variances, oldest first.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from coop_kernel.domain.dtos import (
    AccountingEntryDTO,
    CashReconciliationDTO,
    DividendDistributionDTO,
    DividendRecipientDTO,
    PaymentNotificationDTO,
)
from coop_kernel.domain.lifecycle import NotificationStatus, ReconciliationStatus
from coop_kernel.models.accounting_entry import AccountingEntry
from coop_kernel.models.cash_reconciliation import CashReconciliation
from coop_kernel.models.dividend import DividendDistribution, DividendRecipient
from coop_kernel.models.payment import PaymentNotification
from coop_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[AccountingEntry]):
    """General ledger and workflow queries."""

    # =========================================================================
    # Accounting entries
    # =========================================================================

    def account_balance(self, account_code: str, through: date | None = None) -> Decimal:
        """Σ debit − Σ credit for ``account_code`` up to and including ``through``."""
        stmt = select(
            func.coalesce(func.sum(AccountingEntry.debit), 0),
            func.coalesce(func.sum(AccountingEntry.credit), 0),
        ).where(AccountingEntry.account_code == account_code)
        if through is not None:
            stmt = stmt.where(AccountingEntry.transaction_date <= through)
        debits, credits = self.session.execute(stmt).one()
        return Decimal(str(debits)) - Decimal(str(credits))

    def entries_for_reference(
        self, reference_type: str, reference_id: str
    ) -> list[AccountingEntryDTO]:
        stmt = (
            select(AccountingEntry)
            .where(
                AccountingEntry.reference_type == reference_type,
                AccountingEntry.reference_id == reference_id,
            )
            .order_by(AccountingEntry.created_at, AccountingEntry.account_code)
        )
        return [e.to_dto() for e in self.session.scalars(stmt)]

    def entries_for_period(self, fiscal_period: str) -> list[AccountingEntryDTO]:
        stmt = (
            select(AccountingEntry)
            .where(AccountingEntry.fiscal_period == fiscal_period)
            .order_by(AccountingEntry.transaction_date, AccountingEntry.account_code)
        )
        return [e.to_dto() for e in self.session.scalars(stmt)]

    def total_debits_credits(self) -> tuple[Decimal, Decimal]:
        """Ledger-wide totals; equal whenever every posting balanced."""
        stmt = select(
            func.coalesce(func.sum(AccountingEntry.debit), 0),
            func.coalesce(func.sum(AccountingEntry.credit), 0),
        )
        debits, credits = self.session.execute(stmt).one()
        return Decimal(str(debits)), Decimal(str(credits))

    # =========================================================================
    # Cash reconciliations
    # =========================================================================

    def get_reconciliation(self, reconciliation_id: UUID) -> CashReconciliationDTO | None:
        row = self.session.get(CashReconciliation, reconciliation_id)
        return row.to_dto() if row is not None else None

    def reconciliation_exists_for(self, on: date) -> bool:
        stmt = select(func.count(CashReconciliation.id)).where(
            CashReconciliation.reconciliation_date == on
        )
        return (self.session.scalar(stmt) or 0) > 0

    def pending_reconciliations(self) -> list[CashReconciliationDTO]:
        """PENDING reconciliations with a non-zero variance, oldest first."""
        stmt = (
            select(CashReconciliation)
            .where(
                CashReconciliation.status == ReconciliationStatus.PENDING.value,
                CashReconciliation.variance != 0,
            )
            .order_by(CashReconciliation.reconciliation_date)
        )
        return [r.to_dto() for r in self.session.scalars(stmt)]

    # =========================================================================
    # Dividends
    # =========================================================================

    def get_distribution(self, fiscal_year: int) -> DividendDistributionDTO | None:
        stmt = select(DividendDistribution).where(
            DividendDistribution.fiscal_year == fiscal_year
        )
        row = self.session.scalars(stmt).first()
        if row is None:
            return None
        return row.to_dto(recipients=tuple(self.recipients_for(row.id)))

    def distribution_exists(self, fiscal_year: int) -> bool:
        stmt = select(func.count(DividendDistribution.id)).where(
            DividendDistribution.fiscal_year == fiscal_year
        )
        return (self.session.scalar(stmt) or 0) > 0

    def recipients_for(self, distribution_id: UUID) -> list[DividendRecipientDTO]:
        stmt = (
            select(DividendRecipient)
            .where(DividendRecipient.distribution_id == distribution_id)
            .order_by(DividendRecipient.created_at, DividendRecipient.member_id)
        )
        return [r.to_dto() for r in self.session.scalars(stmt)]

    # =========================================================================
    # Payment notifications
    # =========================================================================

    def get_notification(self, notification_id: UUID) -> PaymentNotificationDTO | None:
        row = self.session.get(PaymentNotification, notification_id)
        return row.to_dto() if row is not None else None

    def pending_notifications(self) -> list[PaymentNotificationDTO]:
        stmt = (
            select(PaymentNotification)
            .where(PaymentNotification.status == NotificationStatus.PENDING.value)
            .order_by(PaymentNotification.created_at)
        )
        return [n.to_dto() for n in self.session.scalars(stmt)]
