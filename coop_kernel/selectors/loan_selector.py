"""
Module: coop_kernel.selectors.loan_selector
Responsibility: Read-only queries over loans, guarantors, payments and the
    monthly balance snapshots.  These are the explicit repository functions
    that replace lazily-loaded associations: each returns exactly the
    aggregate its caller needs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Payment sums only ever include COMPLETED payments; VOID and PENDING
      rows never count towards balances, snapshots or dividends.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select

from coop_kernel.domain.dtos import (
    GuarantorDTO,
    LoanBalanceDTO,
    LoanDTO,
    PaymentDTO,
)
from coop_kernel.domain.lifecycle import LoanStatus, PaymentStatus
from coop_kernel.models.loan import Guarantor, Loan
from coop_kernel.models.loan_balance import LoanBalance
from coop_kernel.models.payment import Payment
from coop_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")


@dataclass(frozen=True)
class PaymentTotals:
    """Sums of COMPLETED payments over a date range."""

    principal: Decimal
    interest: Decimal
    penalty: Decimal
    amount: Decimal
    count: int

    @property
    def average(self) -> Decimal:
        if self.count == 0:
            return _ZERO
        return self.amount / self.count


class LoanSelector(BaseSelector[Loan]):
    """Loan, guarantor and payment queries."""

    # =========================================================================
    # Loans
    # =========================================================================

    def get(self, loan_id: UUID) -> LoanDTO | None:
        loan = self.session.get(Loan, loan_id)
        return loan.to_dto() if loan is not None else None

    def list_loans(
        self,
        statuses: Iterable[LoanStatus] | None = None,
        member_id: UUID | None = None,
    ) -> list[LoanDTO]:
        stmt = select(Loan)
        if statuses is not None:
            stmt = stmt.where(Loan.status.in_([LoanStatus(s).value for s in statuses]))
        if member_id is not None:
            stmt = stmt.where(Loan.member_id == member_id)
        stmt = stmt.order_by(Loan.loan_number)
        return [loan.to_dto() for loan in self.session.scalars(stmt)]

    def loan_ids_by_status(self, statuses: Iterable[LoanStatus]) -> list[UUID]:
        """Ids of loans in any of ``statuses``, in loan-number order."""
        stmt = (
            select(Loan.id)
            .where(Loan.status.in_([LoanStatus(s).value for s in statuses]))
            .order_by(Loan.loan_number)
        )
        return list(self.session.scalars(stmt))

    def has_open_loan(self, member_id: UUID) -> bool:
        """True if the member has an ACTIVE loan."""
        stmt = select(func.count(Loan.id)).where(
            Loan.member_id == member_id,
            Loan.status == LoanStatus.ACTIVE.value,
        )
        return (self.session.scalar(stmt) or 0) > 0

    def count_loans(self) -> int:
        return self.session.scalar(select(func.count(Loan.id))) or 0

    # =========================================================================
    # Guarantors
    # =========================================================================

    def guarantors_for(self, loan_id: UUID) -> list[GuarantorDTO]:
        stmt = select(Guarantor).where(Guarantor.loan_id == loan_id)
        return [g.to_dto() for g in self.session.scalars(stmt)]

    def active_guarantee_count(self, member_id: UUID) -> int:
        stmt = select(func.count(Guarantor.id)).where(
            Guarantor.member_id == member_id,
            Guarantor.is_active.is_(True),
        )
        return self.session.scalar(stmt) or 0

    # =========================================================================
    # Payments
    # =========================================================================

    def get_payment(self, payment_id: UUID) -> PaymentDTO | None:
        payment = self.session.get(Payment, payment_id)
        return payment.to_dto() if payment is not None else None

    def payments_for_loan(self, loan_id: UUID) -> list[PaymentDTO]:
        stmt = (
            select(Payment)
            .where(Payment.loan_id == loan_id)
            .order_by(Payment.payment_date, Payment.payment_number)
        )
        return [p.to_dto() for p in self.session.scalars(stmt)]

    def payments_in_range(
        self,
        loan_id: UUID,
        start: date,
        end: date,
    ) -> list[PaymentDTO]:
        """COMPLETED payments for ``loan_id`` dated within [start, end]."""
        stmt = (
            select(Payment)
            .where(
                Payment.loan_id == loan_id,
                Payment.status == PaymentStatus.COMPLETED.value,
                Payment.payment_date >= start,
                Payment.payment_date <= end,
            )
            .order_by(Payment.payment_date, Payment.payment_number)
        )
        return [p.to_dto() for p in self.session.scalars(stmt)]

    def payment_totals(
        self,
        loan_id: UUID,
        start: date | None = None,
        end: date | None = None,
    ) -> PaymentTotals:
        """
        Sum COMPLETED payments for a loan.

        ``start``/``end`` are inclusive; either may be omitted for an open
        range.  Only COMPLETED payments count.
        """
        stmt = select(
            func.coalesce(func.sum(Payment.principal_amount), 0),
            func.coalesce(func.sum(Payment.interest_amount), 0),
            func.coalesce(func.sum(Payment.penalty_amount), 0),
            func.coalesce(func.sum(Payment.amount), 0),
            func.count(Payment.id),
        ).where(
            Payment.loan_id == loan_id,
            Payment.status == PaymentStatus.COMPLETED.value,
        )
        if start is not None:
            stmt = stmt.where(Payment.payment_date >= start)
        if end is not None:
            stmt = stmt.where(Payment.payment_date <= end)

        principal, interest, penalty, amount, count = self.session.execute(stmt).one()
        return PaymentTotals(
            principal=Decimal(str(principal)),
            interest=Decimal(str(interest)),
            penalty=Decimal(str(penalty)),
            amount=Decimal(str(amount)),
            count=int(count),
        )

    def interest_paid_by_member(self, member_id: UUID, year: int) -> Decimal:
        """Interest component of the member's COMPLETED payments in ``year``."""
        stmt = select(func.coalesce(func.sum(Payment.interest_amount), 0)).where(
            Payment.member_id == member_id,
            Payment.status == PaymentStatus.COMPLETED.value,
            Payment.payment_date >= date(year, 1, 1),
            Payment.payment_date <= date(year, 12, 31),
        )
        return Decimal(str(self.session.scalar(stmt)))

    # =========================================================================
    # Balance snapshots
    # =========================================================================

    def snapshot_exists(self, loan_id: UUID, balance_date: date) -> bool:
        stmt = select(func.count(LoanBalance.id)).where(
            LoanBalance.loan_id == loan_id,
            LoanBalance.balance_date == balance_date,
        )
        return (self.session.scalar(stmt) or 0) > 0

    def latest_snapshot_before(
        self, loan_id: UUID, before: date
    ) -> LoanBalanceDTO | None:
        """Most recent snapshot dated strictly before ``before``."""
        stmt = (
            select(LoanBalance)
            .where(LoanBalance.loan_id == loan_id, LoanBalance.balance_date < before)
            .order_by(LoanBalance.balance_date.desc())
            .limit(1)
        )
        row = self.session.scalars(stmt).first()
        return row.to_dto() if row is not None else None

    def snapshots_for_loan(self, loan_id: UUID) -> list[LoanBalanceDTO]:
        stmt = (
            select(LoanBalance)
            .where(LoanBalance.loan_id == loan_id)
            .order_by(LoanBalance.balance_date)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def snapshot_count(self, loan_id: UUID | None = None) -> int:
        stmt = select(func.count(LoanBalance.id))
        if loan_id is not None:
            stmt = stmt.where(LoanBalance.loan_id == loan_id)
        return self.session.scalar(stmt) or 0

    def closed_period_exists_on_or_after(self, loan_id: UUID, on: date) -> bool:
        """True if a snapshot covering ``on`` (or a later month) exists."""
        stmt = select(func.count(LoanBalance.id)).where(
            LoanBalance.loan_id == loan_id,
            LoanBalance.balance_date >= on,
        )
        return (self.session.scalar(stmt) or 0) > 0
