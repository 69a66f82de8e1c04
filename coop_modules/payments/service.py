"""
coop_modules.payments.service
=============================

Responsibility:
    Takes loan payments at the counter: single loan payments, composite
    payments (share deposit plus loan payment in one transaction) and
    voids.  The split itself is done by the kernel ``PaymentAllocator``.

Architecture:
    Module layer.  Owns the transaction boundary through ``with_audit``:
    commit on success, rollback on failure.  Audited methods call kernel
    services only, never another audited module method.

Invariants enforced:
    - A composite payment is atomic: if the loan leg fails the share
      deposit is rolled back with it.
    - Only COMPLETED payments inside the void window, in a month not yet
      closed for the loan, can be voided.

Failure modes:
    - Everything the allocator raises (InvalidAmountError,
      LoanNotFoundError, LoanNotPayableError, OverpaymentError).
    - LoanMemberMismatchError when a composite payment names another
      member's loan.
    - PaymentNotVoidableError, PeriodAlreadyClosedError on void.

Audit relevance:
    ``LOAN_PAYMENT``, ``COMPOSITE_PAYMENT`` and ``VOID_PAYMENT`` are audited;
    a failed attempt leaves a ``_FAILED`` audit row.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from coop_config import LedgerConfig, get_active_config
from coop_kernel.db.types import ZERO, round_money, to_decimal
from coop_kernel.domain.clock import Clock, SystemClock
from coop_kernel.domain.dtos import (
    CompositePaymentResult,
    PaymentDTO,
    PaymentResult,
)
from coop_kernel.domain.identity import Actor, actor_id_of, require_permission
from coop_kernel.domain.lifecycle import SavingTransactionType
from coop_kernel.domain.loan_math import days_between
from coop_kernel.exceptions import (
    InvalidAmountError,
    LoanMemberMismatchError,
    LoanNotFoundError,
    MemberInactiveError,
    MemberNotFoundError,
    MissingReasonError,
    PaymentNotFoundError,
    PaymentNotVoidableError,
)
from coop_kernel.logging_config import get_logger
from coop_kernel.models.loan import Loan
from coop_kernel.models.member import Member
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.services.audit_recorder import with_audit
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit
from coop_kernel.services.payment_allocator import PaymentAllocator
from coop_kernel.services.savings_service import SavingsService
from coop_modules.loans.helpers import accrual_terms

logger = get_logger("modules.payments.service")


class PaymentService:
    """
    Counter payments against loans.

    Contract:
        Every public mutating method is one audited unit of work.

    Non-goals:
        - Does NOT review member-submitted notifications
          (see ``PaymentNotificationService``).
    """

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
        self._chart = self._config.chart
        self._permissions = self._config.rbac.role_permissions

        self._loans = LoanSelector(session)
        self._allocator = PaymentAllocator(
            session, self._clock, self._chart, accrual_terms(self._policy)
        )
        self._savings = SavingsService(session, self._clock)
        self._poster = LedgerPoster(session, self._clock)

    # =========================================================================
    # Payments
    # =========================================================================

    @with_audit("LOAN_PAYMENT", "Loan", entity_id_arg="loan_id")
    def allocate_payment(
        self,
        loan_id: UUID,
        amount: Decimal,
        payment_date: date | None = None,
        actor: Actor | None = None,
        notes: str | None = None,
    ) -> PaymentResult:
        """
        Apply a payment: penalty first, then interest, then principal.

        ``payment_date`` defaults to today.
        """
        require_permission(actor, "transaction.create", self._permissions)
        return self._allocator.allocate(
            loan_id,
            amount,
            payment_date or self._clock.today(),
            actor_id_of(actor),
            notes,
        )

    @with_audit("COMPOSITE_PAYMENT", "Member", entity_id_arg="member_id")
    def process_composite_payment(
        self,
        member_id: UUID,
        share_amount: Decimal,
        loan_id: UUID | None,
        loan_amount: Decimal,
        actor: Actor | None,
        payment_date: date | None = None,
    ) -> CompositePaymentResult:
        """
        Share deposit and loan payment in one transaction.

        Either leg may be zero, not both.  Any failure rolls back both legs.
        """
        require_permission(actor, "transaction.create", self._permissions)
        share_amount = round_money(to_decimal(share_amount or ZERO))
        loan_amount = round_money(to_decimal(loan_amount or ZERO))
        if share_amount < 0:
            raise InvalidAmountError(share_amount, "share_amount")
        if loan_amount < 0:
            raise InvalidAmountError(loan_amount, "loan_amount")
        if share_amount == 0 and loan_amount == 0:
            raise InvalidAmountError(ZERO, "share_amount + loan_amount")

        member = self._session.get(Member, member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        if not member.is_active:
            raise MemberInactiveError(str(member_id))

        on = payment_date or self._clock.today()
        actor_id = actor_id_of(actor)

        share_capital_after = member.share_capital
        if share_amount > 0:
            txn = self._savings.credit(
                member_id,
                share_amount,
                "Share deposit (composite payment)",
                actor_id,
                transaction_type=SavingTransactionType.SHARE_DEPOSIT,
                transaction_date=on,
            )
            share_capital_after = txn.balance_after
            c = self._chart
            self._poster.post(
                [
                    debit(c.cash.code, c.cash.name, share_amount),
                    credit(c.share_capital.code, c.share_capital.name, share_amount),
                ],
                transaction_date=on,
                description="Share deposit",
                actor_id=actor_id,
                reference_type="SavingTransaction",
                reference_id=txn.id,
            )

        payment = None
        if loan_amount > 0:
            if loan_id is None:
                raise LoanNotFoundError(None)
            loan = self._session.get(Loan, loan_id)
            if loan is None:
                raise LoanNotFoundError(loan_id)
            if loan.member_id != member_id:
                raise LoanMemberMismatchError(str(loan_id), str(member_id))
            payment = self._allocator.allocate(loan_id, loan_amount, on, actor_id)

        logger.info("composite_payment_processed", extra={
            "member_id": str(member_id),
            "share_amount": share_amount,
            "loan_amount": loan_amount,
        })
        return CompositePaymentResult(
            member_id=member_id,
            share_amount=share_amount,
            share_capital_after=round_money(share_capital_after),
            payment=payment,
        )

    # =========================================================================
    # Void
    # =========================================================================

    @with_audit("VOID_PAYMENT", "Payment", entity_id_arg="payment_id")
    def void_payment(
        self,
        payment_id: UUID,
        actor: Actor | None,
        reason: str,
    ) -> PaymentDTO:
        """
        Void a COMPLETED payment within the void window.

        Raises:
            MissingReasonError: blank reason.
            PaymentNotFoundError: unknown payment.
            PaymentNotVoidableError: not COMPLETED, or outside the window.
            PeriodAlreadyClosedError: the payment's month is closed.
        """
        require_permission(actor, "transaction.void", self._permissions)
        if not reason or not reason.strip():
            raise MissingReasonError("void a payment")

        payment = self._loans.get_payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        age = days_between(payment.payment_date, self._clock.today())
        if age > self._policy.void_window_days:
            raise PaymentNotVoidableError(
                str(payment_id),
                f"outside the {self._policy.void_window_days}-day void window",
            )

        return self._allocator.reverse(
            payment_id, actor_id_of(actor), reason.strip(), self._clock.now()
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def minimum_interest_due(self, loan_id: UUID, as_of: date | None = None) -> Decimal:
        """Interest a payment on ``as_of`` must cover before any principal."""
        loan = self._session.get(Loan, loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return self._allocator.interest_due(loan, as_of or self._clock.today())

    def payments_for_loan(self, loan_id: UUID) -> list[PaymentDTO]:
        return self._loans.payments_for_loan(loan_id)
