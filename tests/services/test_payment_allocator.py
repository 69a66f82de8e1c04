"""
Tests for PaymentAllocator.

Validates:
- Waterfall split against interest accrued since the last accrual
- Penalty on overdue loans, assessed once per day
- Overpayment rejected with nothing mutated
- Completion releases guarantors; reversal reopens and restores them
- The cash receipt posting references the payment
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from coop_kernel.domain.lifecycle import LoanStatus, PaymentStatus
from coop_kernel.exceptions import (
    InvalidAmountError,
    LoanNotFoundError,
    LoanNotPayableError,
    OverpaymentError,
    PaymentNotVoidableError,
    PeriodAlreadyClosedError,
)
from coop_kernel.models.loan import Guarantor, Loan
from coop_kernel.models.payment import Payment
from coop_kernel.selectors.ledger_selector import LedgerSelector
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.services.payment_allocator import PaymentAllocator
from coop_kernel.services.period_closer import PeriodCloser

ACTOR_ID = uuid4()


@pytest.fixture
def allocator(session, deterministic_clock):
    return PaymentAllocator(session, deterministic_clock)


# =============================================================================
# Allocation
# =============================================================================


class TestAllocate:

    def test_interest_then_principal(self, session, allocator, loan_factory):
        loan = loan_factory()

        result = allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 31), ACTOR_ID)

        assert result.penalty == Decimal("0.00")
        assert result.interest == Decimal("98.63")
        assert result.principal == Decimal("501.37")
        assert result.outstanding_balance == Decimal("9498.63")
        assert result.loan_status is LoanStatus.ACTIVE

        assert loan.paid_interest == Decimal("98.63")
        assert loan.paid_principal == Decimal("501.37")
        assert loan.interest_accrued == Decimal("0")
        assert loan.interest_accrued_through == date(2025, 1, 31)
        assert loan.last_payment_date == date(2025, 1, 31)

    def test_second_payment_same_day_is_all_principal(self, allocator, loan_factory):
        loan = loan_factory()
        allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 31), ACTOR_ID)

        result = allocator.allocate(loan.id, Decimal("100.00"), date(2025, 1, 31), ACTOR_ID)

        assert result.interest == Decimal("0.00")
        assert result.principal == Decimal("100.00")

    def test_interest_runs_from_last_payment(self, allocator, loan_factory):
        loan = loan_factory()
        allocator.allocate(loan.id, Decimal("98.63"), date(2025, 1, 31), ACTOR_ID)

        result = allocator.allocate(loan.id, Decimal("1000.00"), date(2025, 3, 2), ACTOR_ID)

        # 30 days on the unchanged 10000.00 balance
        assert result.interest == Decimal("98.63")

    def test_partial_interest_is_carried(self, allocator, loan_factory):
        loan = loan_factory()

        result = allocator.allocate(loan.id, Decimal("50.00"), date(2025, 1, 31), ACTOR_ID)

        assert result.interest == Decimal("50.00")
        assert result.principal == Decimal("0.00")
        assert loan.interest_accrued == Decimal("48.63")
        assert loan.outstanding_balance == Decimal("10000.00")

    def test_overdue_loan_pays_penalty_first(self, allocator, loan_factory):
        loan = loan_factory(
            principal=Decimal("1000.00"),
            start_date=date(2024, 1, 1),
            term_months=12,
        )

        result = allocator.allocate(loan.id, Decimal("1000.00"), date(2025, 1, 31), ACTOR_ID)

        # 30 days overdue at 1%/month; 396 days of interest at 12%
        assert result.penalty == Decimal("10.00")
        assert result.interest == Decimal("130.19")
        assert result.principal == Decimal("859.81")
        assert loan.penalty_assessed_through == date(2025, 1, 31)

    def test_receipt_posting(self, session, allocator, loan_factory):
        loan = loan_factory()
        result = allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 31), ACTOR_ID)

        entries = LedgerSelector(session).entries_for_reference("Payment", str(result.payment_id))
        by_account = {e.account_code: e for e in entries}
        assert by_account["1001"].debit == Decimal("600.00")
        assert by_account["1201"].credit == Decimal("501.37")
        assert by_account["4101"].credit == Decimal("98.63")
        assert "4102" not in by_account

    def test_logs_split(self, allocator, loan_factory, captured_logs):
        loan = loan_factory()
        allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 31), ACTOR_ID)

        record = next(r for r in captured_logs() if r["message"] == "payment_allocated")
        assert record["interest"] == "98.63"
        assert record["loan_id"] == str(loan.id)


class TestAllocateRejections:

    def test_overpayment_mutates_nothing(self, session, allocator, loan_factory):
        loan = loan_factory(principal=Decimal("1000.00"))

        with pytest.raises(OverpaymentError) as exc_info:
            allocator.allocate(loan.id, Decimal("5000.00"), date(2025, 1, 31), ACTOR_ID)
        session.rollback()

        assert exc_info.value.payoff_amount == Decimal("1009.86")
        reloaded = session.get(Loan, loan.id)
        assert reloaded.outstanding_balance == Decimal("1000.00")
        assert reloaded.paid_principal == Decimal("0")
        assert LoanSelector(session).payments_for_loan(loan.id) == []

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10.00")])
    def test_non_positive_amount(self, allocator, loan_factory, amount):
        loan = loan_factory()
        with pytest.raises(InvalidAmountError):
            allocator.allocate(loan.id, amount, date(2025, 1, 31), ACTOR_ID)

    def test_unknown_loan(self, allocator):
        with pytest.raises(LoanNotFoundError):
            allocator.allocate(uuid4(), Decimal("10"), date(2025, 1, 31), ACTOR_ID)

    @pytest.mark.parametrize(
        "status", [LoanStatus.PENDING, LoanStatus.COMPLETED, LoanStatus.WRITTEN_OFF]
    )
    def test_loan_not_payable(self, allocator, loan_factory, status):
        loan = loan_factory(status=status)
        with pytest.raises(LoanNotPayableError):
            allocator.allocate(loan.id, Decimal("10"), date(2025, 1, 31), ACTOR_ID)

    def test_payment_dated_in_closed_month(self, session, allocator, loan_factory, deterministic_clock):
        loan = loan_factory()
        PeriodCloser(session, deterministic_clock).close_loan(loan.id, 1, 2025, ACTOR_ID)

        with pytest.raises(PeriodAlreadyClosedError):
            allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 20), ACTOR_ID)
        session.rollback()

        assert session.get(Loan, loan.id).outstanding_balance == Decimal("10000.00")
        assert LoanSelector(session).payments_for_loan(loan.id) == []

    def test_payment_after_closed_month_accepted(self, session, allocator, loan_factory, deterministic_clock):
        loan = loan_factory()
        PeriodCloser(session, deterministic_clock).close_loan(loan.id, 1, 2025, ACTOR_ID)

        result = allocator.allocate(loan.id, Decimal("600.00"), date(2025, 2, 1), ACTOR_ID)

        assert result.principal > Decimal("0")


# =============================================================================
# Completion and reversal
# =============================================================================


class TestCompletion:

    def test_final_payment_completes_and_releases_guarantors(
        self, session, allocator, loan_factory, member_factory,
    ):
        guarantor = member_factory()
        loan = loan_factory(principal=Decimal("500.00"), guarantors=(guarantor,))

        result = allocator.allocate(loan.id, Decimal("500.00"), date(2025, 1, 1), ACTOR_ID)

        assert result.loan_status is LoanStatus.COMPLETED
        assert loan.status == LoanStatus.COMPLETED.value
        assert loan.outstanding_balance == Decimal("0")
        link = session.query(Guarantor).filter_by(loan_id=loan.id).one()
        assert link.is_active is False
        assert link.guarantee_end_date == date(2025, 1, 1)

    def test_defaulted_loan_can_complete(self, allocator, loan_factory):
        loan = loan_factory(principal=Decimal("500.00"), status=LoanStatus.DEFAULTED)
        result = allocator.allocate(loan.id, Decimal("500.00"), date(2025, 1, 1), ACTOR_ID)
        assert result.loan_status is LoanStatus.COMPLETED


class TestReverse:

    def test_reverse_restores_loan(self, session, allocator, loan_factory, deterministic_clock):
        loan = loan_factory()
        result = allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 31), ACTOR_ID)

        dto = allocator.reverse(result.payment_id, ACTOR_ID, "keyed twice", deterministic_clock.now())

        assert dto.status is PaymentStatus.VOID
        assert dto.void_reason == "keyed twice"
        assert loan.outstanding_balance == Decimal("10000.00")
        assert loan.paid_interest == Decimal("0")
        assert loan.interest_accrued == Decimal("98.63")

        entries = LedgerSelector(session).entries_for_reference("PaymentVoid", str(result.payment_id))
        by_account = {e.account_code: e for e in entries}
        assert by_account["1001"].credit == Decimal("600.00")
        assert by_account["1201"].debit == Decimal("501.37")

    def test_voided_payment_excluded_from_totals(self, session, allocator, loan_factory, deterministic_clock):
        loan = loan_factory()
        result = allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 31), ACTOR_ID)
        allocator.reverse(result.payment_id, ACTOR_ID, "error", deterministic_clock.now())

        totals = LoanSelector(session).payment_totals(loan.id)
        assert totals.count == 0
        assert totals.amount == Decimal("0")

    def test_reverse_twice_refused(self, allocator, loan_factory, deterministic_clock):
        loan = loan_factory()
        result = allocator.allocate(loan.id, Decimal("600.00"), date(2025, 1, 31), ACTOR_ID)
        allocator.reverse(result.payment_id, ACTOR_ID, "error", deterministic_clock.now())

        with pytest.raises(PaymentNotVoidableError):
            allocator.reverse(result.payment_id, ACTOR_ID, "again", deterministic_clock.now())

    def test_reverse_reopens_completed_loan(
        self, session, allocator, loan_factory, member_factory, deterministic_clock,
    ):
        guarantor = member_factory()
        loan = loan_factory(principal=Decimal("500.00"), guarantors=(guarantor,))
        result = allocator.allocate(loan.id, Decimal("500.00"), date(2025, 1, 1), ACTOR_ID)

        allocator.reverse(result.payment_id, ACTOR_ID, "bounced", deterministic_clock.now())

        assert loan.status == LoanStatus.ACTIVE.value
        assert loan.outstanding_balance == Decimal("500.00")
        link = session.query(Guarantor).filter_by(loan_id=loan.id).one()
        assert link.is_active is True
        assert link.guarantee_end_date is None
        assert session.get(Payment, result.payment_id).status == PaymentStatus.VOID.value

    def test_reverse_of_late_payoff_restores_default(self, allocator, loan_factory):
        loan = loan_factory(
            principal=Decimal("1000.00"),
            start_date=date(2024, 1, 1),
            term_months=12,
            status=LoanStatus.DEFAULTED,
        )
        # 1000.00 principal + 10.00 penalty + 130.19 interest
        result = allocator.allocate(loan.id, Decimal("1140.19"), date(2025, 1, 31), ACTOR_ID)
        assert result.loan_status is LoanStatus.COMPLETED

        allocator.reverse(
            result.payment_id, ACTOR_ID, "cheque bounced",
            datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc),
        )

        assert loan.status == LoanStatus.DEFAULTED.value
        assert loan.outstanding_balance == Decimal("1000.00")
