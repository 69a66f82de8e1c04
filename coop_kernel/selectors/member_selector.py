"""
Module: coop_kernel.selectors.member_selector
Responsibility: Read-only member and savings queries.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import func, select

from coop_kernel.domain.dtos import MemberDTO, SavingTransactionDTO
from coop_kernel.models.member import Member
from coop_kernel.models.saving_transaction import SavingTransaction
from coop_kernel.selectors.base import BaseSelector


class MemberSelector(BaseSelector[Member]):
    """Member lookups and savings history."""

    def get(self, member_id: UUID) -> MemberDTO | None:
        member = self.session.get(Member, member_id)
        return member.to_dto() if member is not None else None

    def active_members(self) -> list[MemberDTO]:
        stmt = (
            select(Member)
            .where(Member.is_active.is_(True))
            .order_by(Member.member_number)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def id_card_exists(self, id_card: str) -> bool:
        stmt = select(func.count(Member.id)).where(Member.id_card == id_card)
        return (self.session.scalar(stmt) or 0) > 0

    def count_members(self) -> int:
        return self.session.scalar(select(func.count(Member.id))) or 0

    def saving_transactions(self, member_id: UUID) -> list[SavingTransactionDTO]:
        stmt = (
            select(SavingTransaction)
            .where(SavingTransaction.member_id == member_id)
            .order_by(SavingTransaction.created_at)
        )
        return [t.to_dto() for t in self.session.scalars(stmt)]
