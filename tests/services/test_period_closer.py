"""
Tests for PeriodCloser: month-end snapshots and the overdue scan.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from coop_kernel.domain.lifecycle import LoanStatus
from coop_kernel.exceptions import LoanNotFoundError
from coop_kernel.models.loan_balance import LoanBalance
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.services.payment_allocator import PaymentAllocator
from coop_kernel.services.period_closer import PeriodCloser

ACTOR_ID = uuid4()


@pytest.fixture
def closer(session, deterministic_clock):
    return PeriodCloser(session, deterministic_clock)


@pytest.fixture
def allocator(session, deterministic_clock):
    return PaymentAllocator(session, deterministic_clock)


# =============================================================================
# Snapshots
# =============================================================================


class TestCloseLoan:

    def test_first_snapshot(self, session, closer, allocator, loan_factory):
        loan = loan_factory()
        allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 15), ACTOR_ID)

        snapshot = closer.close_loan(loan.id, 1, 2025, ACTOR_ID)

        # 14 days of interest at payment time: 46.03 interest, 553.97 principal
        assert snapshot.balance_date == date(2025, 1, 31)
        assert snapshot.opening_principal == Decimal("10000.00")
        assert snapshot.principal_paid == Decimal("553.97")
        assert snapshot.closing_principal == Decimal("9446.03")
        assert snapshot.interest_accrued == Decimal("98.63")
        assert snapshot.interest_paid == Decimal("46.03")
        assert snapshot.closing_interest == Decimal("52.60")
        assert snapshot.payment_count == 1
        assert snapshot.total_paid == Decimal("600.00")
        assert snapshot.average_payment == Decimal("600.00")
        assert snapshot.days_in_arrears == 0
        assert snapshot.forward_id is None

    def test_second_close_is_a_skip(self, session, closer, loan_factory, captured_logs):
        loan = loan_factory()
        assert closer.close_loan(loan.id, 1, 2025, ACTOR_ID) is not None

        assert closer.close_loan(loan.id, 1, 2025, ACTOR_ID) is None
        assert LoanSelector(session).snapshot_count(loan.id) == 1
        assert any(r["message"] == "loan_period_already_closed" for r in captured_logs())

    def test_chain_links_forward(self, session, closer, allocator, loan_factory):
        loan = loan_factory()
        allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 15), ACTOR_ID)
        january = closer.close_loan(loan.id, 1, 2025, ACTOR_ID)

        february = closer.close_loan(loan.id, 2, 2025, ACTOR_ID)

        assert february.opening_principal == january.closing_principal
        assert february.opening_interest == january.closing_interest
        prior = session.get(LoanBalance, january.id)
        assert prior.forward_id == february.id
        assert prior.forward_date == date(2025, 2, 28)

    def test_gap_month_payments_reduce_opening(self, closer, allocator, loan_factory):
        loan = loan_factory()
        closer.close_loan(loan.id, 1, 2025, ACTOR_ID)
        allocator.allocate(loan.id, Decimal("1000.00"), date(2025, 2, 10), ACTOR_ID)

        march = closer.close_loan(loan.id, 3, 2025, ACTOR_ID)

        assert march.opening_principal == Decimal("10000.00") - loan.paid_principal
        assert march.principal_paid == Decimal("0")

    def test_loan_not_started_is_skipped(self, closer, loan_factory):
        loan = loan_factory(start_date=date(2025, 3, 1))
        assert closer.close_loan(loan.id, 2, 2025, ACTOR_ID) is None

    def test_overdue_loan_accrues_penalty(self, closer, loan_factory):
        loan = loan_factory(
            principal=Decimal("1000.00"),
            start_date=date(2024, 1, 1),
            status=LoanStatus.DEFAULTED,
        )

        snapshot = closer.close_loan(loan.id, 1, 2025, ACTOR_ID)

        # Maturity 2025-01-01: 30 overdue days at 1%/month
        assert snapshot.penalty_accrued == Decimal("10.00")
        assert snapshot.days_in_arrears == 30

    def test_unknown_loan(self, closer):
        with pytest.raises(LoanNotFoundError):
            closer.close_loan(uuid4(), 1, 2025, ACTOR_ID)

    def test_drift_is_logged_not_corrected(self, session, closer, loan_factory, captured_logs):
        loan = loan_factory()
        loan.outstanding_balance = Decimal("9000.00")
        session.commit()

        closer.close_loan(loan.id, 1, 2025, ACTOR_ID)

        assert loan.outstanding_balance == Decimal("9000.00")
        drift = [r for r in captured_logs() if r["message"] == "loan_balance_drift"]
        assert len(drift) == 1
        assert drift[0]["derived_outstanding"] == "10000.00"


# =============================================================================
# Overdue scan
# =============================================================================


class TestFlagOverdue:

    def test_flags_matured_loans_only(self, closer, loan_factory):
        matured = loan_factory(start_date=date(2024, 1, 1))
        current = loan_factory(start_date=date(2025, 1, 1))

        flagged = closer.flag_overdue(date(2025, 1, 2), ACTOR_ID)

        assert flagged == [matured.id]
        assert matured.status == LoanStatus.DEFAULTED.value
        assert current.status == LoanStatus.ACTIVE.value

    def test_not_flagged_on_maturity_day(self, closer, loan_factory):
        loan_factory(start_date=date(2024, 1, 1))
        assert closer.flag_overdue(date(2025, 1, 1), ACTOR_ID) == []

    def test_paid_off_loan_not_flagged(self, closer, loan_factory):
        loan_factory(start_date=date(2024, 1, 1), outstanding_balance=Decimal("0"))
        assert closer.flag_overdue(date(2025, 6, 1), ACTOR_ID) == []

    def test_second_scan_flags_nothing(self, closer, loan_factory):
        loan = loan_factory(start_date=date(2024, 1, 1))
        closer.flag_overdue(date(2025, 1, 2), ACTOR_ID)

        assert closer.flag_overdue(date(2025, 2, 1), ACTOR_ID) == []
        assert loan.status == LoanStatus.DEFAULTED.value
