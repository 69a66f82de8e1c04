"""SavingTransaction model: one movement on a member's share or savings balance."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase, UUIDString
from coop_kernel.domain.dtos import SavingTransactionDTO
from coop_kernel.domain.lifecycle import SavingTransactionType


class SavingTransaction(TrackedBase):
    __tablename__ = "saving_transactions"

    __table_args__ = (
        Index("idx_saving_member_date", "member_id", "transaction_date"),
        Index("idx_saving_reference", "reference_type", "reference_id"),
    )

    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def to_dto(self) -> SavingTransactionDTO:
        return SavingTransactionDTO(
            id=self.id,
            member_id=self.member_id,
            transaction_type=SavingTransactionType(self.transaction_type),
            amount=self.amount,
            balance_after=self.balance_after,
            transaction_date=self.transaction_date,
            reason=self.reason,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
        )
