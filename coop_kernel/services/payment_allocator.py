"""
PaymentAllocator -- apply and reverse loan payments.

Responsibility:
    Locks the loan, brings penalty and interest up to the payment date,
    splits the amount penalty -> interest -> principal, writes the Payment
    row, updates the loan accumulators and posts the cash receipt.  Also
    reverses a completed payment when it is voided.

Architecture position:
    Kernel > Services.  Flush-only.  ``coop_modules.payments`` owns the
    transaction; a failure anywhere leaves the loan untouched once the
    module rolls back.

Invariants enforced:
    - penalty + interest + principal == amount at 2-decimal scale.
    - interest applied never exceeds interest due at the payment date.
    - Penalty is assessed incrementally from ``penalty_assessed_through``;
      no overdue day is charged twice.
    - outstanding_balance never goes negative: a principal portion above
      the outstanding balance raises OverpaymentError before any write.
    - A loan whose outstanding balance reaches zero moves to COMPLETED and
      its guarantors are released.

Failure modes:
    - InvalidAmountError, LoanNotFoundError, LoanNotPayableError,
      PeriodAlreadyClosedError, OverpaymentError: raised before any
      mutation.
    - PaymentNotFoundError, PaymentNotVoidableError,
      PeriodAlreadyClosedError on reversal.

Audit relevance:
    Every allocation emits ``payment_allocated`` with the full split; every
    reversal emits ``payment_reversed``.  Ledger postings reference the
    payment id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from coop_kernel.db.types import ZERO, round_money, to_decimal
from coop_kernel.domain.accounts import DEFAULT_CHART, ChartOfAccounts
from coop_kernel.domain.allocation import Allocation, allocate_waterfall
from coop_kernel.domain.clock import Clock
from coop_kernel.domain.dtos import PaymentDTO, PaymentResult
from coop_kernel.domain.lifecycle import (
    PAYABLE_LOAN_STATUSES,
    LoanStatus,
    PaymentStatus,
    require_transition,
)
from coop_kernel.domain.loan_math import (
    DAY_COUNT_BASIS,
    PENALTY_DAYS_PER_MONTH,
    PENALTY_RATE_PER_MONTH,
    interest_accrual_start,
    interest_due,
    is_past_maturity,
    month_end,
    penalty_due,
)
from coop_kernel.exceptions import (
    InvalidAmountError,
    LoanNotFoundError,
    LoanNotPayableError,
    OverpaymentError,
    PaymentNotFoundError,
    PaymentNotVoidableError,
    PeriodAlreadyClosedError,
)
from coop_kernel.logging_config import LogContext, get_logger
from coop_kernel.models.loan import Guarantor, Loan
from coop_kernel.models.payment import Payment
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.services.base import BaseService
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit

logger = get_logger("services.payment_allocator")


@dataclass(frozen=True)
class AccrualTerms:
    """Day-count basis for interest and the penalty terms for overdue loans."""

    rate_per_month: Decimal = PENALTY_RATE_PER_MONTH
    days_per_month: int = PENALTY_DAYS_PER_MONTH
    day_count_basis: int = DAY_COUNT_BASIS


def new_payment_number(payment_date: date) -> str:
    return f"PAY-{payment_date:%Y%m%d}-{uuid4().hex[:8].upper()}"


class PaymentAllocator(BaseService[Payment]):
    """
    Allocates payments against loans.

    Contract:
        ``allocate()`` either applies the whole payment (loan, payment row,
        ledger lines all flushed) or raises having mutated nothing.

    Guarantees:
        - The loan row is read with SELECT ... FOR UPDATE, and the loan's
          ``version_id`` column catches any write that slips past the lock.

    Non-goals:
        - Does NOT commit.
        - Does NOT check the caller's permissions.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        chart: ChartOfAccounts = DEFAULT_CHART,
        terms: AccrualTerms | None = None,
    ):
        super().__init__(session, clock)
        self.chart = chart
        self.terms = terms or AccrualTerms()
        self._poster = LedgerPoster(session, self.clock)
        self._selector = LoanSelector(session)

    # =========================================================================
    # Loading
    # =========================================================================

    def lock_loan(self, loan_id: UUID) -> Loan:
        loan = self.session.get(Loan, loan_id, with_for_update=True)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    # =========================================================================
    # Dues
    # =========================================================================

    def interest_due(self, loan: Loan, as_of: date) -> Decimal:
        return interest_due(loan, as_of, self.terms.day_count_basis)

    def penalty_due(self, loan: Loan, as_of: date) -> Decimal:
        return penalty_due(
            loan, as_of, self.terms.rate_per_month, self.terms.days_per_month
        )

    def _book_accruals(
        self,
        loan: Loan,
        as_of: date,
        penalty_total: Decimal,
        interest_total: Decimal,
    ) -> None:
        loan.penalty_accrued = penalty_total
        if is_past_maturity(loan, as_of):
            if loan.penalty_assessed_through is None or loan.penalty_assessed_through < as_of:
                loan.penalty_assessed_through = as_of

        loan.interest_accrued = interest_total
        accrual_start = interest_accrual_start(loan)
        if accrual_start is None or accrual_start < as_of:
            loan.interest_accrued_through = as_of

    # =========================================================================
    # Allocation
    # =========================================================================

    def allocate(
        self,
        loan_id: UUID,
        amount: Decimal,
        payment_date: date,
        actor_id: UUID,
        notes: str | None = None,
    ) -> PaymentResult:
        """
        Apply ``amount`` to the loan on ``payment_date``.

        Raises:
            InvalidAmountError: amount <= 0.
            LoanNotFoundError: unknown loan.
            LoanNotPayableError: loan is not ACTIVE or DEFAULTED.
            OverpaymentError: the principal portion exceeds the balance.
            PeriodAlreadyClosedError: the payment date falls in a month
                already closed for the loan.
        """
        amount = round_money(to_decimal(amount))
        if amount <= 0:
            raise InvalidAmountError(amount)

        loan = self.lock_loan(loan_id)
        if LoanStatus(loan.status) not in PAYABLE_LOAN_STATUSES:
            raise LoanNotPayableError(str(loan_id), loan.status)

        period_end = month_end(payment_date.year, payment_date.month)
        if self._selector.closed_period_exists_on_or_after(loan_id, period_end):
            raise PeriodAlreadyClosedError(str(loan_id), period_end)

        with LogContext.bind(loan_id=str(loan_id)):
            penalty_total = self.penalty_due(loan, payment_date)
            interest_total = self.interest_due(loan, payment_date)
            split = allocate_waterfall(amount, penalty_total, interest_total)

            if split.principal > loan.outstanding_balance:
                payoff = round_money(
                    loan.outstanding_balance + penalty_total + interest_total
                )
                logger.warning(
                    "payment_rejected_overpayment",
                    extra={"amount": amount, "payoff_amount": payoff},
                )
                raise OverpaymentError(str(loan_id), amount, payoff)

            self._book_accruals(loan, payment_date, penalty_total, interest_total)
            payment = self._apply(loan, split, payment_date, actor_id, notes)
            self._post_receipt(payment, actor_id)

            logger.info(
                "payment_allocated",
                extra={
                    "payment_id": str(payment.id),
                    "amount": amount,
                    "penalty": split.penalty,
                    "interest": split.interest,
                    "principal": split.principal,
                    "outstanding_balance": loan.outstanding_balance,
                    "loan_status": loan.status,
                },
            )

        return PaymentResult(
            payment_id=payment.id,
            loan_id=loan.id,
            amount=amount,
            principal=split.principal,
            interest=split.interest,
            penalty=split.penalty,
            outstanding_balance=loan.outstanding_balance,
            loan_status=LoanStatus(loan.status),
        )

    def _apply(
        self,
        loan: Loan,
        split: Allocation,
        payment_date: date,
        actor_id: UUID,
        notes: str | None,
    ) -> Payment:
        loan.penalty_accrued = round_money(loan.penalty_accrued - split.penalty)
        loan.interest_accrued = round_money(loan.interest_accrued - split.interest)
        loan.paid_penalty = round_money(loan.paid_penalty + split.penalty)
        loan.paid_interest = round_money(loan.paid_interest + split.interest)
        loan.paid_principal = round_money(loan.paid_principal + split.principal)
        loan.outstanding_balance = round_money(loan.outstanding_balance - split.principal)
        if loan.last_payment_date is None or loan.last_payment_date < payment_date:
            loan.last_payment_date = payment_date
        loan.updated_by_id = actor_id

        payment = Payment(
            payment_number=new_payment_number(payment_date),
            loan_id=loan.id,
            member_id=loan.member_id,
            amount=split.amount,
            principal_amount=split.principal,
            interest_amount=split.interest,
            penalty_amount=split.penalty,
            payment_date=payment_date,
            status=PaymentStatus.COMPLETED.value,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(payment)

        if loan.outstanding_balance == ZERO:
            loan.status = require_transition(
                loan.id, loan.status, LoanStatus.COMPLETED
            ).value
            self._release_guarantors(loan.id, payment_date, actor_id)
            logger.info("loan_completed", extra={"completed_on": payment_date})

        self.session.flush()
        return payment

    def _release_guarantors(self, loan_id: UUID, on: date, actor_id: UUID) -> int:
        stmt = select(Guarantor).where(
            Guarantor.loan_id == loan_id,
            Guarantor.is_active.is_(True),
        )
        released = 0
        for guarantor in self.session.scalars(stmt):
            guarantor.is_active = False
            guarantor.guarantee_end_date = on
            guarantor.updated_by_id = actor_id
            released += 1
        return released

    def release_guarantors(self, loan_id: UUID, on: date, actor_id: UUID) -> int:
        """Deactivate every active guarantee on the loan."""
        released = self._release_guarantors(loan_id, on, actor_id)
        self.session.flush()
        return released

    def _post_receipt(self, payment: Payment, actor_id: UUID) -> None:
        c = self.chart
        self._poster.post(
            [
                debit(c.cash.code, c.cash.name, payment.amount),
                credit(c.loan_receivable.code, c.loan_receivable.name, payment.principal_amount),
                credit(c.interest_income.code, c.interest_income.name, payment.interest_amount),
                credit(c.penalty_income.code, c.penalty_income.name, payment.penalty_amount),
            ],
            transaction_date=payment.payment_date,
            description=f"Loan payment {payment.payment_number}",
            actor_id=actor_id,
            reference_type="Payment",
            reference_id=payment.id,
        )

    # =========================================================================
    # Reversal
    # =========================================================================

    def reverse(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reason: str,
        voided_at: datetime,
    ) -> PaymentDTO:
        """
        Void a COMPLETED payment and undo its effect on the loan.

        A loan that the payment completed is reopened as ACTIVE, or as
        DEFAULTED when the payment was made after maturity.

        Raises:
            PaymentNotFoundError: unknown payment.
            PaymentNotVoidableError: payment is not COMPLETED.
            PeriodAlreadyClosedError: the payment's month is already closed
                for the loan.
        """
        payment = self.session.get(Payment, payment_id, with_for_update=True)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        if payment.status != PaymentStatus.COMPLETED.value:
            raise PaymentNotVoidableError(str(payment_id), f"status is {payment.status}")

        period_end = month_end(payment.payment_date.year, payment.payment_date.month)
        if self._selector.closed_period_exists_on_or_after(payment.loan_id, period_end):
            raise PeriodAlreadyClosedError(str(payment.loan_id), period_end)

        loan = self.lock_loan(payment.loan_id)
        with LogContext.bind(loan_id=str(loan.id)):
            loan.outstanding_balance = round_money(
                loan.outstanding_balance + payment.principal_amount
            )
            loan.paid_principal = round_money(loan.paid_principal - payment.principal_amount)
            loan.paid_interest = round_money(loan.paid_interest - payment.interest_amount)
            loan.paid_penalty = round_money(loan.paid_penalty - payment.penalty_amount)
            loan.interest_accrued = round_money(loan.interest_accrued + payment.interest_amount)
            loan.penalty_accrued = round_money(loan.penalty_accrued + payment.penalty_amount)
            loan.updated_by_id = actor_id

            if loan.status == LoanStatus.COMPLETED.value and loan.outstanding_balance > ZERO:
                # Void is the one path that reopens a completed loan
                loan.status = LoanStatus.ACTIVE.value
                if is_past_maturity(loan, payment.payment_date):
                    loan.status = LoanStatus.DEFAULTED.value
                self._restore_guarantors(loan.id, payment.payment_date, actor_id)
                logger.info("loan_reopened_by_void", extra={"loan_status": loan.status})

            payment.status = PaymentStatus.VOID.value
            payment.void_reason = reason
            payment.voided_by_id = actor_id
            payment.voided_at = voided_at
            payment.updated_by_id = actor_id
            self.session.flush()

            c = self.chart
            self._poster.post(
                [
                    credit(c.cash.code, c.cash.name, payment.amount),
                    debit(c.loan_receivable.code, c.loan_receivable.name, payment.principal_amount),
                    debit(c.interest_income.code, c.interest_income.name, payment.interest_amount),
                    debit(c.penalty_income.code, c.penalty_income.name, payment.penalty_amount),
                ],
                transaction_date=voided_at.date(),
                description=f"Void of payment {payment.payment_number}: {reason}",
                actor_id=actor_id,
                reference_type="PaymentVoid",
                reference_id=payment.id,
            )

            logger.info(
                "payment_reversed",
                extra={
                    "payment_id": str(payment.id),
                    "amount": payment.amount,
                    "outstanding_balance": loan.outstanding_balance,
                },
            )
        return payment.to_dto()

    def _restore_guarantors(self, loan_id: UUID, released_on: date, actor_id: UUID) -> None:
        stmt = select(Guarantor).where(
            Guarantor.loan_id == loan_id,
            Guarantor.is_active.is_(False),
            Guarantor.guarantee_end_date == released_on,
        )
        for guarantor in self.session.scalars(stmt):
            guarantor.is_active = True
            guarantor.guarantee_end_date = None
            guarantor.updated_by_id = actor_id
