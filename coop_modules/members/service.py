"""
coop_modules.members.service
============================

Responsibility:
    Member registration and share-capital deposits.

Architecture:
    Module layer.  Share deposits go through the kernel ``SavingsService``
    (the only writer of member balances) and post Dr cash / Cr share
    capital through the ``LedgerPoster``.

Invariants enforced:
    - Members are at least ``min_member_age`` on the day they join.
    - ID cards are unique.
    - Deposits are positive and only accepted for active members.

Failure modes:
    - MemberUnderageError, DuplicateIdCardError, ValueError (blank name or
      id card) on registration.
    - MemberNotFoundError, MemberInactiveError, InvalidAmountError on
      deposit.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from coop_config import LedgerConfig, get_active_config
from coop_kernel.db.types import ZERO
from coop_kernel.domain.clock import Clock, SystemClock
from coop_kernel.domain.dtos import MemberDTO, SavingTransactionDTO
from coop_kernel.domain.identity import Actor, actor_id_of, require_permission
from coop_kernel.domain.lifecycle import SavingTransactionType
from coop_kernel.exceptions import (
    DuplicateIdCardError,
    MemberInactiveError,
    MemberNotFoundError,
    MemberUnderageError,
)
from coop_kernel.logging_config import get_logger
from coop_kernel.models.member import Member
from coop_kernel.selectors.member_selector import MemberSelector
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit
from coop_kernel.services.savings_service import SavingsService

logger = get_logger("modules.members.service")


def age_on(date_of_birth: date, on: date) -> int:
    """Completed years between ``date_of_birth`` and ``on``."""
    years = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


class MemberService:
    """Registration and share deposits.  Commits on success, rolls back on failure."""

    def __init__(
        self,
        session: Session,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._policy = self._config.members
        self._chart = self._config.chart
        self._permissions = self._config.rbac.role_permissions

        self._members = MemberSelector(session)
        self._savings = SavingsService(session, self._clock)
        self._poster = LedgerPoster(session, self._clock)

    def register_member(
        self,
        full_name: str,
        id_card: str,
        date_of_birth: date,
        actor: Actor | None,
    ) -> MemberDTO:
        require_permission(actor, "member.create", self._permissions)
        try:
            full_name = (full_name or "").strip()
            id_card = (id_card or "").strip()
            if not full_name:
                raise ValueError("full_name is required")
            if not id_card:
                raise ValueError("id_card is required")

            today = self._clock.today()
            age = age_on(date_of_birth, today)
            if age < self._policy.min_member_age:
                raise MemberUnderageError(age, self._policy.min_member_age)
            if self._members.id_card_exists(id_card):
                raise DuplicateIdCardError(id_card)

            sequence = self._members.count_members() + 1
            member = Member(
                member_number=f"{self._policy.member_number_prefix}{sequence:06d}",
                full_name=full_name,
                id_card=id_card,
                date_of_birth=date_of_birth,
                joined_on=today,
                is_active=True,
                share_capital=ZERO,
                savings_balance=ZERO,
                created_by_id=actor_id_of(actor),
            )
            self._session.add(member)
            self._session.flush()

            logger.info("member_registered", extra={
                "member_id": str(member.id),
                "member_number": member.member_number,
            })
            result = member.to_dto()
            self._session.commit()
            return result

        except Exception:
            self._session.rollback()
            raise

    def deposit_share(
        self,
        member_id: UUID,
        amount: Decimal,
        actor: Actor | None,
    ) -> SavingTransactionDTO:
        """Raise the member's share capital; Dr cash / Cr share capital."""
        require_permission(actor, "transaction.create", self._permissions)
        try:
            member = self._session.get(Member, member_id)
            if member is None:
                raise MemberNotFoundError(member_id)
            if not member.is_active:
                raise MemberInactiveError(str(member_id))

            actor_id = actor_id_of(actor)
            today = self._clock.today()
            txn = self._savings.credit(
                member_id,
                amount,
                "Share deposit",
                actor_id,
                transaction_type=SavingTransactionType.SHARE_DEPOSIT,
                transaction_date=today,
            )
            c = self._chart
            self._poster.post(
                [
                    debit(c.cash.code, c.cash.name, txn.amount),
                    credit(c.share_capital.code, c.share_capital.name, txn.amount),
                ],
                transaction_date=today,
                description=f"Share deposit {member.member_number}",
                actor_id=actor_id,
                reference_type="SavingTransaction",
                reference_id=txn.id,
            )
            self._session.commit()
            return txn

        except Exception:
            self._session.rollback()
            raise

    def get_member(self, member_id: UUID) -> MemberDTO:
        member = self._members.get(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    def list_active_members(self) -> list[MemberDTO]:
        return self._members.active_members()

    def saving_transactions(self, member_id: UUID) -> list[SavingTransactionDTO]:
        return self._members.saving_transactions(member_id)
