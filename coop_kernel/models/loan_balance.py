"""
LoanBalance model -- the per-loan month-end snapshot.

Snapshots form a forward-linked chain per loan: when month M is closed, the
snapshot for M-1 gets ``forward_id``/``forward_date`` pointing at M.  Apart
from that one write, snapshot rows are immutable (see db/immutability.py).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase, UUIDString
from coop_kernel.domain.dtos import LoanBalanceDTO


class LoanBalance(TrackedBase):
    """
    Month-end balance snapshot for one loan.

    Guarantees:
        - At most one row per (loan_id, balance_date).
        - closing_principal = opening_principal - principal_paid, never
          below zero.
    """

    __tablename__ = "loan_balances"

    __table_args__ = (
        UniqueConstraint("loan_id", "balance_date", name="uq_loan_balance_period"),
        Index("idx_loan_balance_date", "balance_date"),
    )

    loan_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loans.id"), nullable=False
    )
    balance_date: Mapped[date] = mapped_column(Date, nullable=False)

    opening_principal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    closing_principal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    opening_interest: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    closing_interest: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    opening_penalty: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    closing_penalty: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    principal_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    interest_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    penalty_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    interest_accrued: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    penalty_accrued: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    payment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_payment: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    days_in_arrears: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Write-once pointer to the next month's snapshot
    forward_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    forward_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<LoanBalance {self.loan_id} @ {self.balance_date}>"

    def to_dto(self) -> LoanBalanceDTO:
        return LoanBalanceDTO(
            id=self.id,
            loan_id=self.loan_id,
            balance_date=self.balance_date,
            opening_principal=self.opening_principal,
            closing_principal=self.closing_principal,
            opening_interest=self.opening_interest,
            closing_interest=self.closing_interest,
            opening_penalty=self.opening_penalty,
            closing_penalty=self.closing_penalty,
            principal_paid=self.principal_paid,
            interest_paid=self.interest_paid,
            penalty_paid=self.penalty_paid,
            total_paid=self.total_paid,
            interest_accrued=self.interest_accrued,
            penalty_accrued=self.penalty_accrued,
            payment_count=self.payment_count,
            average_payment=self.average_payment,
            days_in_arrears=self.days_in_arrears,
            forward_id=self.forward_id,
            forward_date=self.forward_date,
        )
