"""
Dividend distribution models.

One DividendDistribution per fiscal year, with one DividendRecipient row per
active member at calculation time.  Recipient rows are write-once; the
distribution header is frozen after it is APPROVED.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase, UUIDString
from coop_kernel.domain.dtos import DividendDistributionDTO, DividendRecipientDTO
from coop_kernel.domain.lifecycle import DistributionStatus


class DividendDistribution(TrackedBase):
    """
    Annual dividend run.

    Guarantees:
        - fiscal_year is unique.
        - total_* columns equal the sums over the recipient rows.
    """

    __tablename__ = "dividend_distributions"

    __table_args__ = (
        UniqueConstraint("fiscal_year", name="uq_dividend_fiscal_year"),
    )

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    dividend_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    average_return_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    total_profit: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    total_dividend_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    total_average_return_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    member_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=DistributionStatus.PENDING.value, nullable=False
    )
    calculated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    distributed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    distributed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<DividendDistribution {self.fiscal_year}: {self.status}>"

    @property
    def is_approved(self) -> bool:
        return self.status == DistributionStatus.APPROVED.value

    def to_dto(
        self, recipients: tuple[DividendRecipientDTO, ...] = ()
    ) -> DividendDistributionDTO:
        return DividendDistributionDTO(
            id=self.id,
            fiscal_year=self.fiscal_year,
            dividend_rate=self.dividend_rate,
            average_return_rate=self.average_return_rate,
            total_dividend_amount=self.total_dividend_amount,
            total_average_return_amount=self.total_average_return_amount,
            member_count=self.member_count,
            status=DistributionStatus(self.status),
            total_profit=self.total_profit,
            calculated_by_id=self.calculated_by_id,
            distributed_at=self.distributed_at,
            distributed_by_id=self.distributed_by_id,
            recipients=recipients,
        )


class DividendRecipient(TrackedBase):
    """One member's share of a distribution."""

    __tablename__ = "dividend_recipients"

    __table_args__ = (
        UniqueConstraint(
            "distribution_id", "member_id", name="uq_dividend_recipient_member"
        ),
        Index("idx_dividend_recipient_distribution", "distribution_id"),
    )

    distribution_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dividend_distributions.id"), nullable=False
    )
    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("members.id"), nullable=False
    )
    share_capital_snapshot: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False
    )
    interest_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    dividend_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    average_return_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    def to_dto(self) -> DividendRecipientDTO:
        return DividendRecipientDTO(
            id=self.id,
            distribution_id=self.distribution_id,
            member_id=self.member_id,
            share_capital_snapshot=self.share_capital_snapshot,
            interest_paid=self.interest_paid,
            dividend_amount=self.dividend_amount,
            average_return_amount=self.average_return_amount,
            total_amount=self.total_amount,
        )
