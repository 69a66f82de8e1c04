"""
Loan and Guarantor models.

Loan rows carry the stored balance fields that the payment allocator and the
period closer read and write.  ``outstanding_balance`` is the source of truth;
``principal - paid_principal`` is kept equal to it and checked on close.
Rows are never deleted once disbursed; lifecycle is expressed through
``status``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase, UUIDString
from coop_kernel.domain.dtos import GuarantorDTO, LoanDTO
from coop_kernel.domain.lifecycle import LoanStatus


class Loan(TrackedBase):
    """
    A member loan.

    Contract:
        Status changes follow ``LOAN_TRANSITIONS``; services pass
        every change through ``require_transition`` before assigning it.

    Guarantees:
        - loan_number is unique.
        - version_id increments on every UPDATE; a stale write raises
          StaleDataError (optimistic lock on top of SELECT ... FOR UPDATE).
    """

    __tablename__ = "loans"

    __table_args__ = (
        UniqueConstraint("loan_number", name="uq_loan_number"),
        Index("idx_loan_member", "member_id"),
        Index("idx_loan_status", "status"),
    )

    loan_number: Mapped[str] = mapped_column(String(40), nullable=False)
    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )
    loan_type: Mapped[str] = mapped_column(String(20), nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)

    principal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    requested_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    term_months: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    maturity_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=LoanStatus.PENDING.value, nullable=False
    )

    outstanding_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    paid_principal: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    paid_interest: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    paid_penalty: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    # Assessed but unpaid amounts, and the dates they are assessed through
    penalty_accrued: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    interest_accrued: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    interest_accrued_through: Mapped[date | None] = mapped_column(Date, nullable=True)
    penalty_assessed_through: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    disbursed_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    written_off_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True
    )
    write_off_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Loan {self.loan_number}: {self.status}>"

    @property
    def is_approved(self) -> bool:
        return self.approved_on is not None

    @property
    def derived_outstanding(self) -> Decimal:
        """``principal - paid_principal``; must match ``outstanding_balance``."""
        return self.principal - self.paid_principal

    def to_dto(self) -> LoanDTO:
        return LoanDTO(
            id=self.id,
            loan_number=self.loan_number,
            member_id=self.member_id,
            loan_type=self.loan_type,
            principal=self.principal,
            requested_amount=self.requested_amount,
            interest_rate=self.interest_rate,
            term_months=self.term_months,
            status=LoanStatus(self.status),
            outstanding_balance=self.outstanding_balance,
            paid_principal=self.paid_principal,
            paid_interest=self.paid_interest,
            paid_penalty=self.paid_penalty,
            penalty_accrued=self.penalty_accrued,
            interest_accrued=self.interest_accrued,
            start_date=self.start_date,
            maturity_date=self.maturity_date,
            last_payment_date=self.last_payment_date,
            interest_accrued_through=self.interest_accrued_through,
            penalty_assessed_through=self.penalty_assessed_through,
            approved_by_id=self.approved_by_id,
            approved_on=self.approved_on,
            disbursed_on=self.disbursed_on,
            rejection_reason=self.rejection_reason,
            written_off_amount=self.written_off_amount,
            purpose=self.purpose,
        )


class Guarantor(TrackedBase):
    """A member guaranteeing another member's loan."""

    __tablename__ = "loan_guarantors"

    __table_args__ = (
        UniqueConstraint("loan_id", "member_id", name="uq_guarantor_loan_member"),
        Index("idx_guarantor_member_active", "member_id", "is_active"),
    )

    loan_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loans.id"), nullable=False
    )
    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    guarantee_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self) -> GuarantorDTO:
        return GuarantorDTO(
            id=self.id,
            loan_id=self.loan_id,
            member_id=self.member_id,
            is_active=self.is_active,
            guarantee_end_date=self.guarantee_end_date,
        )
