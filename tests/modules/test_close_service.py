"""
Tests for PeriodCloseService.

Validates:
- close_month snapshots every ACTIVE and DEFAULTED loan once
- A repeated run writes nothing and reports every loan as skipped
- One loan failing leaves the other loans closed
- The overdue scan is one-way: DEFAULTED loans stay DEFAULTED
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from coop_kernel.domain.lifecycle import LoanStatus
from coop_kernel.exceptions import InvalidPeriodError, PermissionDeniedError
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_modules.close.service import PeriodCloseService
from coop_modules.payments.service import PaymentService


@pytest.fixture
def close_service(session, config, deterministic_clock):
    return PeriodCloseService(session, config=config, clock=deterministic_clock)


# =============================================================================
# close_month
# =============================================================================


class TestCloseMonth:

    def test_closes_active_and_defaulted_only(self, close_service, loan_factory, secretary):
        active = loan_factory()
        defaulted = loan_factory(start_date=date(2023, 1, 1), status=LoanStatus.DEFAULTED)
        loan_factory(status=LoanStatus.PENDING)
        loan_factory(status=LoanStatus.COMPLETED, outstanding_balance=Decimal("0"))

        result = close_service.close_month(1, 2025, secretary)

        assert set(result.closed) == {active.id, defaulted.id}
        assert result.skipped == ()
        assert result.failed == ()
        assert result.period_end == date(2025, 1, 31)

    def test_second_run_is_idempotent(self, session, close_service, loan_factory, captured_logs):
        loans = [loan_factory() for _ in range(3)]
        first = close_service.close_month(1, 2025)

        second = close_service.close_month(1, 2025)

        assert len(first.closed) == 3
        assert second.closed == ()
        assert set(second.skipped) == {loan.id for loan in loans}
        assert LoanSelector(session).snapshot_count() == 3

        completed = [r for r in captured_logs() if r["message"] == "period_close_completed"]
        assert [r["skipped"] for r in completed] == [0, 3]

    def test_snapshot_reflects_month_payments(
        self, session, close_service, config, deterministic_clock, loan_factory, officer,
    ):
        loan = loan_factory()
        PaymentService(session, config=config, clock=deterministic_clock).allocate_payment(
            loan.id, Decimal("600.00"), date(2025, 1, 15), officer
        )

        close_service.close_month(1, 2025)

        [january] = close_service.get_loan_balances(loan.id)
        assert january.closing_principal == Decimal("9446.03")
        assert january.closing_interest == Decimal("52.60")
        assert january.payment_count == 1

    def test_months_chain_in_order(self, close_service, loan_factory):
        loan = loan_factory()
        close_service.close_month(1, 2025)
        close_service.close_month(2, 2025)

        january, february = close_service.get_loan_balances(loan.id)
        assert january.balance_date < february.balance_date
        assert january.forward_id == february.id
        assert february.opening_principal == january.closing_principal

    def test_one_failure_does_not_stop_the_run(
        self, session, close_service, loan_factory, monkeypatch, captured_logs,
    ):
        good = [loan_factory(), loan_factory()]
        bad = loan_factory()
        close_loan = close_service._closer.close_loan

        def failing_close(loan_id, *args, **kwargs):
            if loan_id == bad.id:
                raise RuntimeError("disk full")
            return close_loan(loan_id, *args, **kwargs)

        monkeypatch.setattr(close_service._closer, "close_loan", failing_close)

        result = close_service.close_month(1, 2025)

        assert set(result.closed) == {loan.id for loan in good}
        assert result.failed == (bad.id,)
        assert close_service.get_loan_balances(bad.id) == []
        assert LoanSelector(session).snapshot_count() == 2
        failures = [r for r in captured_logs() if r["message"] == "loan_close_failed"]
        assert [r["loan_id"] for r in failures] == [str(bad.id)]

    def test_integrity_error_without_snapshot_is_a_failure(
        self, session, close_service, loan_factory, monkeypatch,
    ):
        loan = loan_factory()

        def broken_close(loan_id, *args, **kwargs):
            raise IntegrityError("INSERT INTO loan_balances", {}, Exception("NOT NULL constraint failed"))

        monkeypatch.setattr(close_service._closer, "close_loan", broken_close)

        result = close_service.close_month(1, 2025)

        assert result.failed == (loan.id,)
        assert result.skipped == ()

    def test_concurrent_close_counts_as_skip(
        self, session, close_service, loan_factory, monkeypatch,
    ):
        loan = loan_factory()
        close_loan = close_service._closer.close_loan

        def raced_close(loan_id, *args, **kwargs):
            # Another closer commits the same snapshot first
            close_loan(loan_id, *args, **kwargs)
            session.commit()
            raise IntegrityError("INSERT INTO loan_balances", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(close_service._closer, "close_loan", raced_close)

        result = close_service.close_month(1, 2025)

        assert result.skipped == (loan.id,)
        assert result.failed == ()
        assert len(close_service.get_loan_balances(loan.id)) == 1

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, close_service, month):
        with pytest.raises(InvalidPeriodError):
            close_service.close_month(month, 2025)

    def test_officer_cannot_close(self, close_service, officer):
        with pytest.raises(PermissionDeniedError):
            close_service.close_month(1, 2025, officer)


# =============================================================================
# Overdue scan
# =============================================================================


class TestOverdueScan:

    def test_flags_and_commits(self, session, close_service, loan_factory, deterministic_clock):
        loan = loan_factory(start_date=date(2024, 1, 1))
        deterministic_clock.set_date(date(2025, 1, 2))

        flagged = close_service.check_and_flag_overdue_loans()

        assert flagged == [loan.id]
        session.rollback()
        assert LoanSelector(session).get(loan.id).status is LoanStatus.DEFAULTED

    def test_defaulted_is_never_reactivated(self, session, close_service, loan_factory):
        loan = loan_factory(start_date=date(2024, 1, 1))
        close_service.check_and_flag_overdue_loans(today=date(2025, 1, 2))

        for day in (date(2025, 1, 3), date(2025, 6, 1), date(2026, 1, 1)):
            assert close_service.check_and_flag_overdue_loans(today=day) == []

        assert LoanSelector(session).get(loan.id).status is LoanStatus.DEFAULTED
