"""
AccountingEntry model.

Single-line general ledger rows.  A posting writes two or more rows sharing a
``reference_type``/``reference_id``; the ledger poster guarantees that the
rows of one posting balance.  Rows are append-only.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase
from coop_kernel.domain.dtos import AccountingEntryDTO


class AccountingEntry(TrackedBase):
    """
    One debit or credit line.

    Guarantees:
        - Exactly one of debit/credit is non-zero.
        - fiscal_period is "YYYY-MM" of transaction_date.
    """

    __tablename__ = "accounting_entries"

    __table_args__ = (
        Index("idx_accounting_account_date", "account_code", "transaction_date"),
        Index("idx_accounting_reference", "reference_type", "reference_id"),
        Index("idx_accounting_period", "fiscal_period"),
    )

    fiscal_period: Mapped[str] = mapped_column(String(7), nullable=False)
    account_code: Mapped[str] = mapped_column(String(20), nullable=False)
    account_name: Mapped[str] = mapped_column(String(100), nullable=False)
    debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AccountingEntry {self.account_code} "
            f"Dr {self.debit} Cr {self.credit}>"
        )

    def to_dto(self) -> AccountingEntryDTO:
        return AccountingEntryDTO(
            id=self.id,
            fiscal_period=self.fiscal_period,
            account_code=self.account_code,
            account_name=self.account_name,
            debit=self.debit,
            credit=self.credit,
            transaction_date=self.transaction_date,
            description=self.description,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
        )
