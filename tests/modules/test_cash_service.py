"""
Tests for CashReconciliationService.

Validates:
- variance = physical count - ledger cash balance
- Non-zero PENDING variances block the day close until reviewed
- Approval books the variance against cash over/short
- The approver is never the officer who counted
- No anonymous caller gets through
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from coop_kernel.domain.lifecycle import ReconciliationStatus
from coop_kernel.exceptions import (
    DuplicateReconciliationError,
    InvalidAmountError,
    InvalidReconciliationStateError,
    MissingReasonError,
    PermissionDeniedError,
    ReconciliationNotFoundError,
    SelfApprovalError,
)
from coop_kernel.models.audit_log import AuditLog
from coop_kernel.selectors.ledger_selector import LedgerSelector
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit
from coop_modules.cash.service import CashReconciliationService


@pytest.fixture
def cash_service(session, config, deterministic_clock):
    return CashReconciliationService(session, config=config, clock=deterministic_clock)


@pytest.fixture
def cash_on_hand(session, deterministic_clock):
    """Put ``amount`` into the cash account, dated the day before the clock."""

    def _fund(amount: Decimal) -> None:
        LedgerPoster(session, deterministic_clock).post(
            [debit("1001", "Cash", amount), credit("3101", "Share Capital", amount)],
            transaction_date=date(2024, 12, 31),
            description="Opening cash",
            actor_id=uuid4(),
        )
        session.commit()

    return _fund


# =============================================================================
# Submission
# =============================================================================


class TestCreateReconciliation:

    def test_variance_against_ledger(self, cash_service, cash_on_hand, officer):
        cash_on_hand(Decimal("4900.00"))

        rec = cash_service.create_reconciliation(Decimal("5000.00"), officer, notes="till 1")

        assert rec.database_balance == Decimal("4900.00")
        assert rec.variance == Decimal("100.00")
        assert rec.status is ReconciliationStatus.PENDING
        assert rec.reconciliation_date == date(2025, 1, 1)
        assert rec.officer_id == officer.id
        assert [r.id for r in cash_service.get_pending_reconciliations()] == [rec.id]
        assert cash_service.can_close_day() is False

    def test_exact_count_does_not_block_close(self, cash_service, cash_on_hand, officer):
        cash_on_hand(Decimal("4900.00"))

        rec = cash_service.create_reconciliation(Decimal("4900.00"), officer)

        assert rec.has_variance is False
        assert cash_service.get_pending_reconciliations() == []
        assert cash_service.can_close_day() is True

    def test_one_per_day(self, cash_service, officer, second_officer, deterministic_clock):
        cash_service.create_reconciliation(Decimal("0"), officer)

        with pytest.raises(DuplicateReconciliationError):
            cash_service.create_reconciliation(Decimal("0"), second_officer)

        deterministic_clock.advance_days(1)
        assert cash_service.create_reconciliation(Decimal("0"), second_officer) is not None

    def test_negative_count(self, cash_service, officer):
        with pytest.raises(InvalidAmountError):
            cash_service.create_reconciliation(Decimal("-1"), officer)

    def test_anonymous_caller_refused(self, session, cash_service):
        with pytest.raises(PermissionDeniedError):
            cash_service.create_reconciliation(Decimal("100"), None)
        assert cash_service.get_pending_reconciliations() == []

    def test_secretary_cannot_count(self, cash_service, secretary):
        with pytest.raises(PermissionDeniedError):
            cash_service.create_reconciliation(Decimal("100"), secretary)


# =============================================================================
# Review
# =============================================================================


class TestApproveDiscrepancy:

    def test_excess_is_booked_and_cleared(
        self, session, cash_service, cash_on_hand, officer, secretary,
    ):
        cash_on_hand(Decimal("4900.00"))
        rec = cash_service.create_reconciliation(Decimal("5000.00"), officer)

        approved = cash_service.approve_discrepancy(rec.id, secretary, notes="found in safe")

        assert approved.status is ReconciliationStatus.APPROVED
        assert approved.secretary_id == secretary.id
        assert approved.resolved_at is not None
        assert cash_service.get_pending_reconciliations() == []
        assert cash_service.can_close_day() is True

        entries = LedgerSelector(session).entries_for_reference("CashReconciliation", str(rec.id))
        by_account = {e.account_code: e for e in entries}
        assert by_account["1001"].debit == Decimal("100.00")
        assert by_account["5901"].credit == Decimal("100.00")
        assert cash_service.calculate_database_balance() == Decimal("5000.00")

    def test_shortage_is_booked(self, session, cash_service, cash_on_hand, officer, secretary):
        cash_on_hand(Decimal("4900.00"))
        rec = cash_service.create_reconciliation(Decimal("4850.00"), officer)

        cash_service.approve_discrepancy(rec.id, secretary)

        entries = LedgerSelector(session).entries_for_reference("CashReconciliation", str(rec.id))
        by_account = {e.account_code: e for e in entries}
        assert by_account["5901"].debit == Decimal("50.00")
        assert by_account["1001"].credit == Decimal("50.00")
        assert cash_service.calculate_database_balance() == Decimal("4850.00")

    def test_self_approval_blocked(self, session, cash_service, cash_on_hand, president, captured_logs):
        cash_on_hand(Decimal("4900.00"))
        rec = cash_service.create_reconciliation(Decimal("5000.00"), president)

        with pytest.raises(SelfApprovalError):
            cash_service.approve_discrepancy(rec.id, president)

        assert cash_service.get_reconciliation(rec.id).status is ReconciliationStatus.PENDING
        assert any(r["message"] == "self_approval_blocked" for r in captured_logs())
        actions = set(session.scalars(select(AuditLog.action)))
        assert "APPROVE_DISCREPANCY_FAILED" in actions

    def test_officer_cannot_approve(self, cash_service, officer, second_officer):
        rec = cash_service.create_reconciliation(Decimal("10.00"), officer)
        with pytest.raises(PermissionDeniedError):
            cash_service.approve_discrepancy(rec.id, second_officer)

    def test_anonymous_approval_refused(self, cash_service, officer):
        rec = cash_service.create_reconciliation(Decimal("10.00"), officer)
        with pytest.raises(PermissionDeniedError):
            cash_service.approve_discrepancy(rec.id, None)

    def test_unknown_reconciliation(self, cash_service, secretary):
        with pytest.raises(ReconciliationNotFoundError):
            cash_service.approve_discrepancy(uuid4(), secretary)


class TestRejectDiscrepancy:

    def test_reject_posts_nothing(self, session, cash_service, cash_on_hand, officer, secretary):
        cash_on_hand(Decimal("4900.00"))
        rec = cash_service.create_reconciliation(Decimal("5000.00"), officer)

        rejected = cash_service.reject_discrepancy(rec.id, secretary, "  recount  ")

        assert rejected.status is ReconciliationStatus.REJECTED
        assert rejected.secretary_notes == "recount"
        assert LedgerSelector(session).entries_for_reference("CashReconciliation", str(rec.id)) == []
        assert cash_service.calculate_database_balance() == Decimal("4900.00")

    def test_notes_required(self, cash_service, officer, secretary):
        rec = cash_service.create_reconciliation(Decimal("10.00"), officer)
        with pytest.raises(MissingReasonError):
            cash_service.reject_discrepancy(rec.id, secretary, "")

    def test_resolved_once(self, cash_service, officer, secretary):
        rec = cash_service.create_reconciliation(Decimal("10.00"), officer)
        cash_service.reject_discrepancy(rec.id, secretary, "recount")

        with pytest.raises(InvalidReconciliationStateError):
            cash_service.approve_discrepancy(rec.id, secretary)
