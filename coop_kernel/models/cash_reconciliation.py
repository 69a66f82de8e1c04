"""
CashReconciliation model.

Daily comparison of the officer's physical cash count against the cash
account balance in the ledger.  One row per calendar date; frozen once the
secretary approves or rejects it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase, UUIDString
from coop_kernel.domain.dtos import CashReconciliationDTO
from coop_kernel.domain.lifecycle import ReconciliationStatus


class CashReconciliation(TrackedBase):
    """
    Daily cash count.

    Guarantees:
        - reconciliation_date is unique.
        - variance == physical_count - database_balance.
    """

    __tablename__ = "cash_reconciliations"

    __table_args__ = (
        UniqueConstraint("reconciliation_date", name="uq_cash_reconciliation_date"),
        Index("idx_cash_reconciliation_status", "status"),
    )

    reconciliation_date: Mapped[date] = mapped_column(Date, nullable=False)
    officer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    physical_count: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    database_balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    variance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ReconciliationStatus.PENDING.value, nullable=False
    )
    officer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    secretary_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    secretary_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<CashReconciliation {self.reconciliation_date}: {self.status}>"

    @property
    def is_pending(self) -> bool:
        return self.status == ReconciliationStatus.PENDING.value

    def to_dto(self) -> CashReconciliationDTO:
        return CashReconciliationDTO(
            id=self.id,
            reconciliation_date=self.reconciliation_date,
            officer_id=self.officer_id,
            physical_count=self.physical_count,
            database_balance=self.database_balance,
            variance=self.variance,
            status=ReconciliationStatus(self.status),
            officer_notes=self.officer_notes,
            secretary_id=self.secretary_id,
            secretary_notes=self.secretary_notes,
            resolved_at=self.resolved_at,
        )
