"""Tests for MemberService and ``age_on``."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from coop_kernel.domain.lifecycle import SavingTransactionType
from coop_kernel.exceptions import (
    DuplicateIdCardError,
    InvalidAmountError,
    MemberInactiveError,
    MemberNotFoundError,
    MemberUnderageError,
    PermissionDeniedError,
)
from coop_kernel.selectors.ledger_selector import LedgerSelector
from coop_modules.members.service import MemberService, age_on


@pytest.fixture
def member_service(session, config, deterministic_clock):
    return MemberService(session, config=config, clock=deterministic_clock)


class TestAgeOn:

    @pytest.mark.parametrize(
        "dob, on, expected",
        [
            (date(2007, 1, 1), date(2025, 1, 1), 18),
            (date(2007, 1, 2), date(2025, 1, 1), 17),
            (date(2004, 2, 29), date(2025, 2, 28), 20),
            (date(2004, 2, 29), date(2025, 3, 1), 21),
        ],
    )
    def test_completed_years(self, dob, on, expected):
        assert age_on(dob, on) == expected


class TestRegisterMember:

    def test_registration(self, member_service, officer):
        member = member_service.register_member(" Ana Lopez ", "ID-1", date(1990, 5, 5), officer)

        assert member.full_name == "Ana Lopez"
        assert member.member_number == "M000001"
        assert member.joined_on == date(2025, 1, 1)
        assert member.is_active is True
        assert member.share_capital == Decimal("0")
        assert [m.id for m in member_service.list_active_members()] == [member.id]

    def test_member_numbers_are_sequential(self, member_service, officer):
        first = member_service.register_member("A", "ID-1", date(1990, 5, 5), officer)
        second = member_service.register_member("B", "ID-2", date(1990, 5, 5), officer)
        assert (first.member_number, second.member_number) == ("M000001", "M000002")

    def test_eighteenth_birthday_is_enough(self, member_service, officer):
        assert member_service.register_member("A", "ID-1", date(2007, 1, 1), officer)

    def test_underage_refused(self, member_service, officer):
        with pytest.raises(MemberUnderageError):
            member_service.register_member("A", "ID-1", date(2007, 1, 2), officer)

    def test_duplicate_id_card(self, member_service, officer):
        member_service.register_member("A", "ID-1", date(1990, 5, 5), officer)
        with pytest.raises(DuplicateIdCardError):
            member_service.register_member("B", "ID-1", date(1991, 5, 5), officer)

    @pytest.mark.parametrize("name, id_card", [("", "ID-1"), ("A", "   ")])
    def test_blank_fields(self, member_service, officer, name, id_card):
        with pytest.raises(ValueError):
            member_service.register_member(name, id_card, date(1990, 5, 5), officer)

    def test_member_role_cannot_register(self, member_service, member_actor):
        with pytest.raises(PermissionDeniedError):
            member_service.register_member("A", "ID-1", date(1990, 5, 5), member_actor)


class TestDepositShare:

    def test_deposit_posts_cash_and_share_capital(self, session, member_service, member_factory, officer):
        member = member_factory(share_capital=Decimal("100.00"))

        txn = member_service.deposit_share(member.id, Decimal("250.00"), officer)

        assert txn.transaction_type is SavingTransactionType.SHARE_DEPOSIT
        assert txn.balance_after == Decimal("350.00")
        assert member_service.get_member(member.id).share_capital == Decimal("350.00")
        ledger = LedgerSelector(session)
        assert ledger.account_balance("1001") == Decimal("250.00")
        assert ledger.account_balance("3101") == Decimal("-250.00")
        assert [t.id for t in member_service.saving_transactions(member.id)] == [txn.id]

    def test_inactive_member_refused(self, member_service, member_factory, officer):
        member = member_factory(is_active=False)
        with pytest.raises(MemberInactiveError):
            member_service.deposit_share(member.id, Decimal("10"), officer)

    def test_unknown_member(self, member_service, officer):
        with pytest.raises(MemberNotFoundError):
            member_service.deposit_share(uuid4(), Decimal("10"), officer)

    def test_non_positive_amount(self, member_service, member_factory, officer):
        member = member_factory()
        with pytest.raises(InvalidAmountError):
            member_service.deposit_share(member.id, Decimal("0"), officer)
