"""
coop_modules.loans.service
==========================

Responsibility:
    Orchestrates the loan lifecycle from application to disbursement (or
    rejection) and the write-off of unrecoverable loans.  All arithmetic
    lives in ``coop_kernel.domain.loan_math``; all status changes go through
    the kernel transition table.

Architecture:
    Module layer.  Owns the transaction boundary: every public mutating
    method commits on success and rolls back on failure, either directly
    or through ``with_audit``.

Invariants enforced:
    - A member holds at most one ACTIVE loan.
    - Term lies within the configured bounds; the rate defaults per loan
      type when not given.
    - At most ``max_guarantors`` guarantors, none of them the borrower, each
      active and below ``max_active_guarantees`` live guarantees.
    - Approval keeps the loan PENDING; only disbursement makes it ACTIVE.
    - Disbursement posts Dr loan receivable / Cr cash for the principal.

Failure modes:
    - MemberNotFoundError, MemberInactiveError, ActiveLoanExistsError,
      InvalidAmountError, InvalidTermError, InvalidRateError,
      GuarantorLimitError, SelfGuaranteeError on application.
    - LoanNotFoundError, InvalidLoanTransitionError, MissingReasonError,
      PermissionDeniedError on the lifecycle operations.

Audit relevance:
    Approve, disburse, reject and write-off are audited with before/after
    state.  Applications log ``loan_application_created``.

Usage::

    service = LoanService(session, clock=clock)
    loan = service.apply_for_loan(member_id, "PERSONAL", Decimal("10000"), 12, officer)
    service.approve_loan(loan.id, president)
    service.disburse_loan(loan.id, president)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from coop_config import LedgerConfig, get_active_config
from coop_kernel.db.types import ZERO, round_money, to_decimal
from coop_kernel.domain.clock import Clock, SystemClock
from coop_kernel.domain.dtos import LoanDTO
from coop_kernel.domain.identity import Actor, actor_id_of, require_permission
from coop_kernel.domain.lifecycle import LoanStatus, LoanType, require_transition
from coop_kernel.domain.loan_math import PayoffQuote, add_months, payoff_quote
from coop_kernel.exceptions import (
    ActiveLoanExistsError,
    GuarantorLimitError,
    InvalidAmountError,
    InvalidLoanTransitionError,
    InvalidRateError,
    InvalidTermError,
    LoanNotFoundError,
    MemberInactiveError,
    MemberNotFoundError,
    MissingReasonError,
    SelfGuaranteeError,
)
from coop_kernel.logging_config import LogContext, get_logger
from coop_kernel.models.loan import Guarantor, Loan
from coop_kernel.models.member import Member
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.services.audit_recorder import with_audit
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit
from coop_kernel.services.payment_allocator import PaymentAllocator
from coop_modules.loans.helpers import accrual_terms, new_loan_number

logger = get_logger("modules.loans.service")

_HUNDRED = Decimal("100")


class LoanService:
    """
    Loan origination and terminal handling.

    Contract:
        Each public mutating method either commits and returns a ``LoanDTO``
        or rolls back and raises.

    Guarantees:
        - Clock is injected; the business date comes from ``clock.today()``.
        - Loan rows are locked (SELECT ... FOR UPDATE) before any change.

    Non-goals:
        - Does NOT take payments (see ``coop_modules.payments``).
        - Does NOT close periods or flag overdue loans.
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
        self._poster = LedgerPoster(session, self._clock)
        self._allocator = PaymentAllocator(
            session, self._clock, self._chart, accrual_terms(self._policy)
        )

    # =========================================================================
    # Application
    # =========================================================================

    def apply_for_loan(
        self,
        member_id: UUID,
        loan_type: LoanType | str,
        principal: Decimal,
        term_months: int,
        actor: Actor | None,
        guarantor_ids: Sequence[UUID] = (),
        purpose: str | None = None,
        interest_rate: Decimal | None = None,
    ) -> LoanDTO:
        """
        Record a loan application in PENDING status.

        Raises:
            MemberNotFoundError / MemberInactiveError: borrower or guarantor.
            ActiveLoanExistsError: the borrower already has an ACTIVE loan.
            InvalidAmountError: principal <= 0.
            InvalidTermError: term outside the configured bounds.
            InvalidRateError: no rate configured for the type, or out of range.
            GuarantorLimitError / SelfGuaranteeError: guarantor rules.
        """
        require_permission(actor, "loan.create", self._permissions)
        try:
            loan_type = LoanType(loan_type)
            principal = round_money(to_decimal(principal))
            if principal <= 0:
                raise InvalidAmountError(principal, "principal")

            if not self._policy.min_term_months <= term_months <= self._policy.max_term_months:
                raise InvalidTermError(
                    term_months,
                    self._policy.min_term_months,
                    self._policy.max_term_months,
                )

            rate = self._resolve_rate(loan_type, interest_rate)

            borrower = self._session.get(Member, member_id)
            if borrower is None:
                raise MemberNotFoundError(member_id)
            if not borrower.is_active:
                raise MemberInactiveError(str(member_id))
            if self._loans.has_open_loan(member_id):
                raise ActiveLoanExistsError(str(member_id))

            guarantor_ids = list(guarantor_ids)
            self._check_guarantors(member_id, guarantor_ids)

            today = self._clock.today()
            actor_id = actor_id_of(actor)
            loan = Loan(
                loan_number=new_loan_number(today),
                member_id=member_id,
                loan_type=loan_type.value,
                purpose=purpose,
                principal=principal,
                requested_amount=principal,
                interest_rate=rate,
                term_months=term_months,
                start_date=today,
                maturity_date=add_months(today, term_months),
                status=LoanStatus.PENDING.value,
                outstanding_balance=ZERO,
                created_by_id=actor_id,
            )
            self._session.add(loan)
            self._session.flush()

            for guarantor_id in guarantor_ids:
                self._session.add(Guarantor(
                    loan_id=loan.id,
                    member_id=guarantor_id,
                    is_active=True,
                    created_by_id=actor_id,
                ))
            self._session.flush()

            logger.info("loan_application_created", extra={
                "loan_id": str(loan.id),
                "loan_number": loan.loan_number,
                "member_id": str(member_id),
                "principal": principal,
                "term_months": term_months,
                "guarantor_count": len(guarantor_ids),
            })
            result = loan.to_dto()
            self._session.commit()
            return result

        except Exception:
            self._session.rollback()
            raise

    def _resolve_rate(self, loan_type: LoanType, interest_rate: Decimal | None) -> Decimal:
        if interest_rate is None:
            rate = self._policy.rate_for(loan_type.value)
            if rate is None:
                raise InvalidRateError(Decimal("-1"), f"default rate for {loan_type.value}")
        else:
            rate = to_decimal(interest_rate)
        if rate < 0 or rate > _HUNDRED:
            raise InvalidRateError(rate, "interest_rate")
        return rate

    def _check_guarantors(self, borrower_id: UUID, guarantor_ids: list[UUID]) -> None:
        if len(guarantor_ids) > self._policy.max_guarantors:
            raise GuarantorLimitError(
                f"A loan may have at most {self._policy.max_guarantors} guarantors"
            )
        if len(set(guarantor_ids)) != len(guarantor_ids):
            raise GuarantorLimitError("The same guarantor is listed twice")

        for guarantor_id in guarantor_ids:
            if guarantor_id == borrower_id:
                raise SelfGuaranteeError(str(borrower_id))
            guarantor = self._session.get(Member, guarantor_id)
            if guarantor is None:
                raise MemberNotFoundError(guarantor_id)
            if not guarantor.is_active:
                raise MemberInactiveError(str(guarantor_id))
            live = self._loans.active_guarantee_count(guarantor_id)
            if live >= self._policy.max_active_guarantees:
                raise GuarantorLimitError(
                    f"Guarantor already backs {live} loans "
                    f"(limit {self._policy.max_active_guarantees})",
                    str(guarantor_id),
                )

    # =========================================================================
    # Approval and disbursement
    # =========================================================================

    def _lock(self, loan_id: UUID) -> Loan:
        loan = self._session.get(Loan, loan_id, with_for_update=True)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    @with_audit("APPROVE_LOAN", "Loan", entity_id_arg="loan_id")
    def approve_loan(
        self,
        loan_id: UUID,
        actor: Actor | None,
        approved_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> LoanDTO:
        """Approve a PENDING application.  The loan stays PENDING until disbursed."""
        require_permission(actor, "loan.approve", self._permissions)
        loan = self._lock(loan_id)
        require_transition(loan.id, loan.status, LoanStatus.ACTIVE)

        amount = loan.requested_amount if approved_amount is None else approved_amount
        amount = round_money(to_decimal(amount))
        if amount <= 0:
            raise InvalidAmountError(amount, "approved_amount")

        loan.principal = amount
        loan.approved_by_id = actor_id_of(actor)
        loan.approved_on = self._clock.today()
        loan.approval_notes = notes
        loan.updated_by_id = actor_id_of(actor)
        self._session.flush()

        with LogContext.bind(loan_id=str(loan.id)):
            logger.info("loan_approved", extra={
                "approved_amount": amount,
                "requested_amount": loan.requested_amount,
            })
        return loan.to_dto()

    @with_audit("DISBURSE_LOAN", "Loan", entity_id_arg="loan_id")
    def disburse_loan(self, loan_id: UUID, actor: Actor | None) -> LoanDTO:
        """
        Pay out an approved loan: PENDING -> ACTIVE.

        The start date is today, maturity is start + term months and the
        outstanding balance is the approved principal.
        """
        require_permission(actor, "loan.approve", self._permissions)
        loan = self._lock(loan_id)
        if not loan.is_approved:
            # Unapproved applications cannot be disbursed
            raise InvalidLoanTransitionError(str(loan.id), loan.status, LoanStatus.ACTIVE.value)
        loan.status = require_transition(loan.id, loan.status, LoanStatus.ACTIVE).value

        today = self._clock.today()
        actor_id = actor_id_of(actor)
        loan.start_date = today
        loan.maturity_date = add_months(today, loan.term_months)
        loan.disbursed_on = today
        loan.outstanding_balance = loan.principal
        loan.interest_accrued_through = None
        loan.penalty_assessed_through = None
        loan.updated_by_id = actor_id
        self._session.flush()

        c = self._chart
        self._poster.post(
            [
                debit(c.loan_receivable.code, c.loan_receivable.name, loan.principal),
                credit(c.cash.code, c.cash.name, loan.principal),
            ],
            transaction_date=today,
            description=f"Disbursement of loan {loan.loan_number}",
            actor_id=actor_id,
            reference_type="Loan",
            reference_id=loan.id,
        )

        with LogContext.bind(loan_id=str(loan.id)):
            logger.info("loan_disbursed", extra={
                "principal": loan.principal,
                "maturity_date": loan.maturity_date,
            })
        return loan.to_dto()

    @with_audit("REJECT_LOAN", "Loan", entity_id_arg="loan_id")
    def reject_loan(self, loan_id: UUID, actor: Actor | None, reason: str) -> LoanDTO:
        require_permission(actor, "loan.approve", self._permissions)
        if not reason or not reason.strip():
            raise MissingReasonError("reject a loan")
        loan = self._lock(loan_id)
        loan.status = require_transition(loan.id, loan.status, LoanStatus.REJECTED).value
        loan.rejection_reason = reason.strip()
        loan.updated_by_id = actor_id_of(actor)
        self._allocator.release_guarantors(loan.id, self._clock.today(), actor_id_of(actor))

        logger.info("loan_rejected", extra={"loan_id": str(loan.id)})
        return loan.to_dto()

    # =========================================================================
    # Write-off
    # =========================================================================

    @with_audit("WRITE_OFF_LOAN", "Loan", entity_id_arg="loan_id")
    def write_off_loan(self, loan_id: UUID, actor: Actor | None, reason: str) -> LoanDTO:
        """
        Write off an ACTIVE or DEFAULTED loan.

        The outstanding balance moves to ``written_off_amount``, is charged
        to bad-debt expense against loans receivable, and every guarantee
        on the loan is released.
        """
        require_permission(actor, "loan.write_off", self._permissions)
        if not reason or not reason.strip():
            raise MissingReasonError("write off a loan")
        loan = self._lock(loan_id)
        loan.status = require_transition(loan.id, loan.status, LoanStatus.WRITTEN_OFF).value

        actor_id = actor_id_of(actor)
        loan.written_off_amount = loan.outstanding_balance
        loan.write_off_reason = reason.strip()
        loan.outstanding_balance = ZERO
        loan.updated_by_id = actor_id
        released = self._allocator.release_guarantors(loan.id, self._clock.today(), actor_id)
        self._session.flush()

        if loan.written_off_amount > ZERO:
            c = self._chart
            self._poster.post(
                [
                    debit(c.bad_debt_expense.code, c.bad_debt_expense.name, loan.written_off_amount),
                    credit(c.loan_receivable.code, c.loan_receivable.name, loan.written_off_amount),
                ],
                transaction_date=self._clock.today(),
                description=f"Write-off of loan {loan.loan_number}",
                actor_id=actor_id,
                reference_type="LoanWriteOff",
                reference_id=loan.id,
            )

        with LogContext.bind(loan_id=str(loan.id)):
            logger.warning("loan_written_off", extra={
                "written_off_amount": loan.written_off_amount,
                "guarantors_released": released,
            })
        return loan.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def calculate_payoff(self, loan_id: UUID, as_of: date | None = None) -> PayoffQuote:
        """Amount that settles the loan on ``as_of`` (default today).  Read-only."""
        loan = self._session.get(Loan, loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        terms = accrual_terms(self._policy)
        return payoff_quote(
            loan,
            as_of or self._clock.today(),
            terms.day_count_basis,
            terms.rate_per_month,
            terms.days_per_month,
        )

    def get_loan(self, loan_id: UUID) -> LoanDTO:
        loan = self._loans.get(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    def list_loans(
        self,
        status: LoanStatus | str | None = None,
        member_id: UUID | None = None,
    ) -> list[LoanDTO]:
        statuses = [LoanStatus(status)] if status is not None else None
        return self._loans.list_loans(statuses, member_id)
