"""
Member model.

A cooperative member holds share capital (the base for dividends) and a
savings balance (where dividend payouts and savings credits land).  Members
are deactivated, never deleted.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase
from coop_kernel.domain.dtos import MemberDTO


class Member(TrackedBase):
    """
    Cooperative member.

    Guarantees:
        - id_card and member_number are unique.
        - share_capital and savings_balance are only changed through the
          savings service, which writes a SavingTransaction for each change.
    """

    __tablename__ = "members"

    __table_args__ = (
        UniqueConstraint("id_card", name="uq_member_id_card"),
        UniqueConstraint("member_number", name="uq_member_number"),
        Index("idx_member_active", "is_active"),
    )

    member_number: Mapped[str] = mapped_column(String(30), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    id_card: Mapped[str] = mapped_column(String(30), nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    joined_on: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    share_capital: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    savings_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Member {self.member_number}: {self.full_name}>"

    def to_dto(self) -> MemberDTO:
        return MemberDTO(
            id=self.id,
            member_number=self.member_number,
            full_name=self.full_name,
            id_card=self.id_card,
            date_of_birth=self.date_of_birth,
            is_active=self.is_active,
            share_capital=self.share_capital,
            savings_balance=self.savings_balance,
            joined_on=self.joined_on,
        )
