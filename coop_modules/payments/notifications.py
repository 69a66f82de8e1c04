"""
coop_modules.payments.notifications
===================================

Responsibility:
    Member-submitted payment notifications ("I paid 500 by bank transfer")
    and their review by an officer.  An approved notification becomes a
    real loan payment dated the day of approval.

Architecture:
    Module layer.  Submission commits directly; review is audited.

Invariants enforced:
    - The loan belongs to the member and is payable.
    - minimum_notification_amount <= amount <= outstanding balance.
    - A notification leaves PENDING exactly once.

Failure modes:
    - NotificationAmountError, LoanMemberMismatchError, LoanNotPayableError
      on submission.
    - NotificationNotFoundError, InvalidNotificationStateError,
      MissingReasonError on review.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from coop_config import LedgerConfig, get_active_config
from coop_kernel.db.types import round_money, to_decimal
from coop_kernel.domain.clock import Clock, SystemClock
from coop_kernel.domain.dtos import PaymentNotificationDTO
from coop_kernel.domain.identity import Actor, actor_id_of, require_permission
from coop_kernel.domain.lifecycle import (
    PAYABLE_LOAN_STATUSES,
    LoanStatus,
    NotificationStatus,
)
from coop_kernel.exceptions import (
    InvalidAmountError,
    InvalidNotificationStateError,
    LoanMemberMismatchError,
    LoanNotFoundError,
    LoanNotPayableError,
    MemberInactiveError,
    MemberNotFoundError,
    MissingReasonError,
    NotificationAmountError,
    NotificationNotFoundError,
)
from coop_kernel.logging_config import get_logger
from coop_kernel.models.loan import Loan
from coop_kernel.models.member import Member
from coop_kernel.models.payment import PaymentNotification
from coop_kernel.selectors.ledger_selector import LedgerSelector
from coop_kernel.services.audit_recorder import with_audit
from coop_kernel.services.payment_allocator import PaymentAllocator
from coop_modules.loans.helpers import accrual_terms

logger = get_logger("modules.payments.notifications")


class PaymentNotificationService:
    """Submission and review of member payment notifications."""

    def __init__(
        self,
        session: Session,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._policy = self._config.loans
        self._permissions = self._config.rbac.role_permissions

        self._ledger = LedgerSelector(session)
        self._allocator = PaymentAllocator(
            session, self._clock, self._config.chart, accrual_terms(self._policy)
        )

    def submit_notification(
        self,
        member_id: UUID,
        loan_id: UUID,
        amount: Decimal,
        actor: Actor | None,
        notes: str | None = None,
    ) -> PaymentNotificationDTO:
        require_permission(actor, "notification.submit", self._permissions)
        try:
            amount = round_money(to_decimal(amount))
            if amount <= 0:
                raise InvalidAmountError(amount)

            member = self._session.get(Member, member_id)
            if member is None:
                raise MemberNotFoundError(member_id)
            if not member.is_active:
                raise MemberInactiveError(str(member_id))

            loan = self._session.get(Loan, loan_id)
            if loan is None:
                raise LoanNotFoundError(loan_id)
            if loan.member_id != member_id:
                raise LoanMemberMismatchError(str(loan_id), str(member_id))
            if LoanStatus(loan.status) not in PAYABLE_LOAN_STATUSES:
                raise LoanNotPayableError(str(loan_id), loan.status)

            minimum = self._policy.minimum_notification_amount
            if amount < minimum:
                raise NotificationAmountError(amount, f"below the minimum of {minimum}")
            if amount > loan.outstanding_balance:
                raise NotificationAmountError(
                    amount,
                    f"exceeds the outstanding balance of {round_money(loan.outstanding_balance)}",
                )

            row = PaymentNotification(
                member_id=member_id,
                loan_id=loan_id,
                amount=amount,
                status=NotificationStatus.PENDING.value,
                notes=notes,
                submitted_by_id=actor_id_of(actor),
                created_by_id=actor_id_of(actor),
            )
            self._session.add(row)
            self._session.flush()

            logger.info("payment_notification_submitted", extra={
                "notification_id": str(row.id),
                "loan_id": str(loan_id),
                "amount": amount,
            })
            result = row.to_dto()
            self._session.commit()
            return result

        except Exception:
            self._session.rollback()
            raise

    def _lock_pending(self, notification_id: UUID) -> PaymentNotification:
        row = self._session.get(PaymentNotification, notification_id, with_for_update=True)
        if row is None:
            raise NotificationNotFoundError(notification_id)
        if row.status != NotificationStatus.PENDING.value:
            raise InvalidNotificationStateError(str(notification_id), row.status)
        return row

    @with_audit("APPROVE_PAYMENT_NOTIFICATION", "PaymentNotification",
                entity_id_arg="notification_id")
    def approve_notification(
        self,
        notification_id: UUID,
        actor: Actor | None,
        notes: str | None = None,
    ) -> PaymentNotificationDTO:
        """Approve and book the payment through the allocator, dated today."""
        require_permission(actor, "notification.review", self._permissions)
        row = self._lock_pending(notification_id)

        actor_id = actor_id_of(actor)
        result = self._allocator.allocate(
            row.loan_id,
            row.amount,
            self._clock.today(),
            actor_id,
            notes=f"Payment notification {row.id}",
        )
        row.status = NotificationStatus.APPROVED.value
        row.reviewed_by_id = actor_id
        row.review_notes = notes
        row.payment_id = result.payment_id
        row.updated_by_id = actor_id
        self._session.flush()

        logger.info("payment_notification_approved", extra={
            "notification_id": str(row.id),
            "payment_id": str(result.payment_id),
        })
        return row.to_dto()

    @with_audit("REJECT_PAYMENT_NOTIFICATION", "PaymentNotification",
                entity_id_arg="notification_id")
    def reject_notification(
        self,
        notification_id: UUID,
        actor: Actor | None,
        reason: str,
    ) -> PaymentNotificationDTO:
        require_permission(actor, "notification.review", self._permissions)
        if not reason or not reason.strip():
            raise MissingReasonError("reject a payment notification")
        row = self._lock_pending(notification_id)

        row.status = NotificationStatus.REJECTED.value
        row.reviewed_by_id = actor_id_of(actor)
        row.review_notes = reason.strip()
        row.updated_by_id = actor_id_of(actor)
        self._session.flush()

        logger.info("payment_notification_rejected", extra={
            "notification_id": str(row.id),
        })
        return row.to_dto()

    def list_pending_notifications(self) -> list[PaymentNotificationDTO]:
        return self._ledger.pending_notifications()
