"""
Payment and PaymentNotification models.

A Payment records one allocated receipt against a loan, split into penalty,
interest and principal.  Completed payments are never edited; the only
permitted change is COMPLETED -> VOID together with the void metadata.

A PaymentNotification is a member's claim that money was paid.  It moves the
ledger only once an officer approves it, at which point a Payment is created
and linked back through ``payment_id``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase, UUIDString
from coop_kernel.domain.dtos import PaymentDTO, PaymentNotificationDTO
from coop_kernel.domain.lifecycle import NotificationStatus, PaymentStatus


class Payment(TrackedBase):
    """
    One loan payment.

    Guarantees:
        - penalty_amount + interest_amount + principal_amount == amount.
        - payment_number is unique.
    """

    __tablename__ = "loan_payments"

    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payment_number"),
        Index("idx_payment_loan_date", "loan_id", "payment_date"),
        Index("idx_payment_member", "member_id"),
    )

    payment_number: Mapped[str] = mapped_column(String(40), nullable=False)
    loan_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loans.id"), nullable=False
    )
    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    principal_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.COMPLETED.value, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number}: {self.amount} ({self.status})>"

    @property
    def is_void(self) -> bool:
        return self.status == PaymentStatus.VOID.value

    def to_dto(self) -> PaymentDTO:
        return PaymentDTO(
            id=self.id,
            payment_number=self.payment_number,
            loan_id=self.loan_id,
            member_id=self.member_id,
            amount=self.amount,
            principal_amount=self.principal_amount,
            interest_amount=self.interest_amount,
            penalty_amount=self.penalty_amount,
            payment_date=self.payment_date,
            status=PaymentStatus(self.status),
            notes=self.notes,
            void_reason=self.void_reason,
        )


class PaymentNotification(TrackedBase):
    """Member-submitted payment claim awaiting officer review."""

    __tablename__ = "payment_notifications"

    __table_args__ = (
        Index("idx_notification_status", "status"),
        Index("idx_notification_member", "member_id"),
    )

    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )
    loan_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loans.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=NotificationStatus.PENDING.value, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("loan_payments.id"), nullable=True
    )

    def to_dto(self) -> PaymentNotificationDTO:
        return PaymentNotificationDTO(
            id=self.id,
            member_id=self.member_id,
            loan_id=self.loan_id,
            amount=self.amount,
            status=NotificationStatus(self.status),
            submitted_by_id=self.submitted_by_id,
            notes=self.notes,
            reviewed_by_id=self.reviewed_by_id,
            review_notes=self.review_notes,
            payment_id=self.payment_id,
        )
