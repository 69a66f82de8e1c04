"""
SavingsService -- the savings and share-capital sink.

Responsibility:
    Credits a member's savings balance or share capital and records one
    SavingTransaction per movement.  Dividend payouts and share deposits
    both flow through here.

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - Credits are strictly positive.
    - ``balance_after`` on the transaction row equals the member balance
      after the credit.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from coop_kernel.db.types import round_money
from coop_kernel.domain.dtos import SavingTransactionDTO
from coop_kernel.domain.lifecycle import SavingTransactionType
from coop_kernel.exceptions import InvalidAmountError, MemberNotFoundError
from coop_kernel.logging_config import get_logger
from coop_kernel.models.member import Member
from coop_kernel.models.saving_transaction import SavingTransaction
from coop_kernel.services.base import BaseService

logger = get_logger("services.savings")


class SavingsService(BaseService[SavingTransaction]):
    """Writes member balance credits."""

    def credit(
        self,
        member_id: UUID,
        amount: Decimal,
        reason: str,
        actor_id: UUID,
        reference_type: str | None = None,
        reference_id: object | None = None,
        transaction_type: SavingTransactionType = SavingTransactionType.SAVINGS_CREDIT,
        transaction_date: date | None = None,
    ) -> SavingTransactionDTO:
        """
        Credit ``amount`` to the member.

        SHARE_DEPOSIT raises share capital; every other type raises the
        savings balance.

        Raises:
            InvalidAmountError: amount is not positive.
            MemberNotFoundError: unknown member.
        """
        amount = round_money(amount)
        if amount <= 0:
            raise InvalidAmountError(amount)

        member = self.session.get(Member, member_id, with_for_update=True)
        if member is None:
            raise MemberNotFoundError(member_id)

        if transaction_type == SavingTransactionType.SHARE_DEPOSIT:
            member.share_capital = round_money(member.share_capital + amount)
            balance_after = member.share_capital
        else:
            member.savings_balance = round_money(member.savings_balance + amount)
            balance_after = member.savings_balance
        member.updated_by_id = actor_id

        txn = SavingTransaction(
            member_id=member_id,
            transaction_type=transaction_type.value,
            amount=amount,
            balance_after=balance_after,
            transaction_date=transaction_date or self.clock.today(),
            reason=reason,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            created_by_id=actor_id,
        )
        self.session.add(txn)
        self.session.flush()

        logger.info(
            "member_credited",
            extra={
                "member_id": str(member_id),
                "amount": amount,
                "transaction_type": transaction_type.value,
                "balance_after": balance_after,
            },
        )
        return txn.to_dto()
