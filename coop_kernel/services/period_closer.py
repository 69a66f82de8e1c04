"""
PeriodCloser -- month-end balance snapshots and the overdue scan.

Responsibility:
    ``close_loan()`` writes the LoanBalance snapshot for one loan and one
    month, chaining it to the previous snapshot.  ``flag_overdue()`` moves
    ACTIVE loans past maturity with a balance to DEFAULTED.

Architecture position:
    Kernel > Services.  Flush-only.  ``coop_modules.close`` drives it one
    loan per transaction.

Invariants enforced:
    - At most one snapshot per (loan, month end).  An existing snapshot is
      a skip, not an error; the unique constraint closes the race between
      two concurrent closers.
    - opening principal = previous closing principal (less any principal
      paid in an unclosed gap), else principal less everything paid before
      the period.
    - closing = opening - paid (+ accrued for interest and penalty), never
      below zero.
    - Only COMPLETED payments count.
    - Snapshots do not change loan balances; the stored
      ``outstanding_balance`` stays the source of truth.
    - DEFAULTED is never set back to ACTIVE here.

Failure modes:
    - LoanNotFoundError for an unknown loan.
    - IntegrityError on a concurrent insert for the same period (the
      caller treats it as a skip).
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from coop_kernel.db.types import ZERO, round_money
from coop_kernel.domain.clock import Clock
from coop_kernel.domain.dtos import LoanBalanceDTO
from coop_kernel.domain.lifecycle import LoanStatus, require_transition
from coop_kernel.domain.loan_math import (
    accrued_interest,
    days_between,
    days_overdue,
    is_overdue,
    month_end,
    month_start,
    penalty_for_days,
)
from coop_kernel.exceptions import LoanNotFoundError
from coop_kernel.logging_config import LogContext, get_logger
from coop_kernel.models.loan import Loan
from coop_kernel.models.loan_balance import LoanBalance
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.services.base import BaseService
from coop_kernel.services.payment_allocator import AccrualTerms

logger = get_logger("services.period_closer")


class PeriodCloser(BaseService[LoanBalance]):
    """
    Writes month-end snapshots.

    Contract:
        ``close_loan()`` returns the new snapshot, or None when the period
        is already closed for the loan (or the loan had not started yet).
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        terms: AccrualTerms | None = None,
    ):
        super().__init__(session, clock)
        self.terms = terms or AccrualTerms()
        self._selector = LoanSelector(session)

    def close_loan(
        self,
        loan_id: UUID,
        month: int,
        year: int,
        actor_id: UUID,
    ) -> LoanBalanceDTO | None:
        period_start = month_start(year, month)
        period_end = month_end(year, month)

        with LogContext.bind(loan_id=str(loan_id)):
            if self._selector.snapshot_exists(loan_id, period_end):
                logger.info(
                    "loan_period_already_closed",
                    extra={"balance_date": period_end},
                )
                return None

            loan = self.session.get(Loan, loan_id, with_for_update=True)
            if loan is None:
                raise LoanNotFoundError(loan_id)
            if loan.start_date is None or loan.start_date > period_end:
                logger.info(
                    "loan_period_not_started",
                    extra={"balance_date": period_end, "start_date": loan.start_date},
                )
                return None

            self._check_drift(loan)

            prior = self._selector.latest_snapshot_before(loan_id, period_start)
            paid = self._selector.payment_totals(loan_id, period_start, period_end)

            if prior is not None:
                gap = self._selector.payment_totals(
                    loan_id, prior.balance_date + timedelta(days=1),
                    period_start - timedelta(days=1),
                )
                opening_principal = prior.closing_principal - gap.principal
                opening_interest = prior.closing_interest
                opening_penalty = prior.closing_penalty
            else:
                before = self._selector.payment_totals(
                    loan_id, end=period_start - timedelta(days=1)
                )
                opening_principal = loan.principal - before.principal
                opening_interest = ZERO
                opening_penalty = ZERO
            opening_principal = max(round_money(opening_principal), ZERO)

            interest_accrued = self._interest_for_period(
                loan, opening_principal, period_start, period_end
            )
            penalty_accrued = self._penalty_for_period(
                loan, opening_principal, period_start, period_end
            )

            closing_principal = max(
                round_money(opening_principal - paid.principal), ZERO
            )
            closing_interest = max(
                round_money(opening_interest + interest_accrued - paid.interest), ZERO
            )
            closing_penalty = max(
                round_money(opening_penalty + penalty_accrued - paid.penalty), ZERO
            )

            snapshot = LoanBalance(
                loan_id=loan_id,
                balance_date=period_end,
                opening_principal=opening_principal,
                closing_principal=closing_principal,
                opening_interest=round_money(opening_interest),
                closing_interest=closing_interest,
                opening_penalty=round_money(opening_penalty),
                closing_penalty=closing_penalty,
                principal_paid=round_money(paid.principal),
                interest_paid=round_money(paid.interest),
                penalty_paid=round_money(paid.penalty),
                total_paid=round_money(paid.amount),
                interest_accrued=interest_accrued,
                penalty_accrued=penalty_accrued,
                payment_count=paid.count,
                average_payment=round_money(paid.average),
                days_in_arrears=days_overdue(loan, period_end),
                created_by_id=actor_id,
            )
            self.session.add(snapshot)
            self.session.flush()

            if prior is not None and prior.forward_id is None:
                prior_row = self.session.get(LoanBalance, prior.id)
                prior_row.forward_id = snapshot.id
                prior_row.forward_date = period_end
                prior_row.updated_by_id = actor_id
                self.session.flush()

            logger.info(
                "loan_period_closed",
                extra={
                    "balance_date": period_end,
                    "closing_principal": closing_principal,
                    "payment_count": paid.count,
                },
            )
            return snapshot.to_dto()

    def _interest_for_period(
        self,
        loan: Loan,
        principal: Decimal,
        period_start: date,
        period_end: date,
    ) -> Decimal:
        accrue_from = max(loan.start_date, period_start - timedelta(days=1))
        return accrued_interest(
            principal,
            loan.interest_rate,
            accrue_from,
            period_end,
            self.terms.day_count_basis,
        )

    def _penalty_for_period(
        self,
        loan: Loan,
        principal: Decimal,
        period_start: date,
        period_end: date,
    ) -> Decimal:
        if loan.maturity_date is None or loan.maturity_date >= period_end:
            return ZERO
        overdue_from = max(loan.maturity_date, period_start - timedelta(days=1))
        return penalty_for_days(
            principal,
            days_between(overdue_from, period_end),
            self.terms.rate_per_month,
            self.terms.days_per_month,
        )

    def _check_drift(self, loan: Loan) -> None:
        derived = round_money(loan.principal - loan.paid_principal)
        if LoanStatus(loan.status) == LoanStatus.WRITTEN_OFF:
            return
        if round_money(loan.outstanding_balance) != derived:
            logger.warning(
                "loan_balance_drift",
                extra={
                    "stored_outstanding": loan.outstanding_balance,
                    "derived_outstanding": derived,
                },
            )

    # =========================================================================
    # Overdue scan
    # =========================================================================

    def flag_overdue(self, today: date, actor_id: UUID) -> list[UUID]:
        """Move overdue ACTIVE loans to DEFAULTED.  Returns the loan ids."""
        stmt = (
            select(Loan)
            .where(
                Loan.status == LoanStatus.ACTIVE.value,
                Loan.maturity_date.is_not(None),
                Loan.maturity_date < today,
                Loan.outstanding_balance > 0,
            )
            .order_by(Loan.loan_number)
            .with_for_update()
        )
        flagged: list[UUID] = []
        for loan in self.session.scalars(stmt):
            if not is_overdue(loan, today):
                continue
            loan.status = require_transition(
                loan.id, loan.status, LoanStatus.DEFAULTED
            ).value
            loan.updated_by_id = actor_id
            flagged.append(loan.id)
            logger.info(
                "loan_flagged_defaulted",
                extra={"loan_id": str(loan.id), "maturity_date": loan.maturity_date},
            )
        self.session.flush()
        return flagged
