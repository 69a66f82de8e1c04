"""
coop_modules.cash.service
=========================

Responsibility:
    End-of-day cash reconciliation.  An officer counts the drawer and
    records the physical count against the ledger's cash balance; a
    secretary approves or rejects any variance.  Approval books the
    variance so the cash account matches the count.

Architecture:
    Module layer.  The ledger balance comes from ``LedgerSelector``; the
    adjustment is posted through the kernel ``LedgerPoster``.

Invariants enforced:
    - One reconciliation per business date.
    - variance = physical_count - database_balance.
    - The approver is never the officer who created the record.
    - A reconciliation leaves PENDING exactly once; rejection needs a
      reason.
    - The day can close only when no PENDING reconciliation carries a
      non-zero variance.

Failure modes:
    - DuplicateReconciliationError, InvalidAmountError on creation.
    - ReconciliationNotFoundError, InvalidReconciliationStateError,
      SelfApprovalError, MissingReasonError on review.
    - PermissionDeniedError when no actor, or an actor without the
      permission, is given.

Audit relevance:
    ``CREATE_CASH_RECONCILIATION``, ``APPROVE_DISCREPANCY`` and
    ``REJECT_DISCREPANCY`` are audited.  Cash is the highest-risk area of
    the ledger, so this workflow never runs without a named actor.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from coop_config import LedgerConfig, get_active_config
from coop_kernel.db.types import ZERO, round_money, to_decimal
from coop_kernel.domain.clock import Clock, SystemClock
from coop_kernel.domain.dtos import CashReconciliationDTO
from coop_kernel.domain.identity import Actor, require_actor
from coop_kernel.domain.lifecycle import ReconciliationStatus
from coop_kernel.exceptions import (
    DuplicateReconciliationError,
    InvalidAmountError,
    InvalidReconciliationStateError,
    MissingReasonError,
    ReconciliationNotFoundError,
    SelfApprovalError,
)
from coop_kernel.logging_config import get_logger
from coop_kernel.models.cash_reconciliation import CashReconciliation
from coop_kernel.selectors.ledger_selector import LedgerSelector
from coop_kernel.services.audit_recorder import with_audit
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit

logger = get_logger("modules.cash.service")


class CashReconciliationService:
    """
    Officer submission, secretary approval.

    Contract:
        Every mutating method is an audited unit of work and requires a
        named actor holding the relevant permission.

    Non-goals:
        - Does NOT count cash.  The physical count is an input.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._chart = self._config.chart
        self._cash_code = self._config.cash.cash_account_code
        self._permissions = self._config.rbac.role_permissions

        self._ledger = LedgerSelector(session)
        self._poster = LedgerPoster(session, self._clock)

    # =========================================================================
    # Submission
    # =========================================================================

    @with_audit("CREATE_CASH_RECONCILIATION", "CashReconciliation", actor_arg="officer")
    def create_reconciliation(
        self,
        physical_count: Decimal,
        officer: Actor | None,
        notes: str | None = None,
    ) -> CashReconciliationDTO:
        """
        Record today's drawer count against the ledger cash balance.

        Raises:
            PermissionDeniedError: no officer, or lacking ``cash.reconcile``.
            InvalidAmountError: negative count.
            DuplicateReconciliationError: today is already reconciled.
        """
        officer = require_actor(officer, "cash.reconcile", self._permissions)
        physical_count = round_money(to_decimal(physical_count))
        if physical_count < 0:
            raise InvalidAmountError(physical_count, "physical_count")

        today = self._clock.today()
        if self._ledger.reconciliation_exists_for(today):
            raise DuplicateReconciliationError(today)

        database_balance = self.calculate_database_balance(today)
        variance = round_money(physical_count - database_balance)

        row = CashReconciliation(
            reconciliation_date=today,
            officer_id=officer.id,
            physical_count=physical_count,
            database_balance=database_balance,
            variance=variance,
            status=ReconciliationStatus.PENDING.value,
            officer_notes=notes,
            created_by_id=officer.id,
        )
        self._session.add(row)
        self._session.flush()

        logger.info("reconciliation_created", extra={
            "reconciliation_id": str(row.id),
            "reconciliation_date": today,
            "physical_count": physical_count,
            "database_balance": database_balance,
            "variance": variance,
        })
        return row.to_dto()

    # =========================================================================
    # Review
    # =========================================================================

    def _lock_for_review(self, reconciliation_id: UUID, secretary: Actor) -> CashReconciliation:
        row = self._session.get(CashReconciliation, reconciliation_id, with_for_update=True)
        if row is None:
            raise ReconciliationNotFoundError(reconciliation_id)
        if row.status != ReconciliationStatus.PENDING.value:
            raise InvalidReconciliationStateError(str(reconciliation_id), row.status)
        if row.officer_id == secretary.id:
            logger.warning("self_approval_blocked", extra={
                "reconciliation_id": str(reconciliation_id),
            })
            raise SelfApprovalError(
                "CashReconciliation", str(reconciliation_id), str(secretary.id)
            )
        return row

    @with_audit("APPROVE_DISCREPANCY", "CashReconciliation",
                entity_id_arg="reconciliation_id", actor_arg="secretary")
    def approve_discrepancy(
        self,
        reconciliation_id: UUID,
        secretary: Actor | None,
        notes: str | None = None,
    ) -> CashReconciliationDTO:
        """
        Accept the count and book any variance.

        Excess cash: Dr cash / Cr cash over-short.  Shortage: the reverse.
        """
        secretary = require_actor(secretary, "cash.approve", self._permissions)
        row = self._lock_for_review(reconciliation_id, secretary)

        variance = round_money(row.variance)
        if variance != ZERO:
            self._post_variance(row, variance, secretary.id)

        row.status = ReconciliationStatus.APPROVED.value
        row.secretary_id = secretary.id
        row.secretary_notes = notes
        row.resolved_at = self._clock.now()
        row.updated_by_id = secretary.id
        self._session.flush()

        logger.info("reconciliation_approved", extra={
            "reconciliation_id": str(row.id),
            "variance": variance,
        })
        return row.to_dto()

    def _post_variance(self, row: CashReconciliation, variance: Decimal, actor_id: UUID) -> None:
        c = self._chart
        amount = abs(variance)
        if variance > 0:
            lines = [
                debit(c.cash.code, c.cash.name, amount),
                credit(c.cash_over_short.code, c.cash_over_short.name, amount),
            ]
        else:
            lines = [
                debit(c.cash_over_short.code, c.cash_over_short.name, amount),
                credit(c.cash.code, c.cash.name, amount),
            ]
        self._poster.post(
            lines,
            transaction_date=row.reconciliation_date,
            description=f"Cash variance {row.reconciliation_date}",
            actor_id=actor_id,
            reference_type="CashReconciliation",
            reference_id=row.id,
        )

    @with_audit("REJECT_DISCREPANCY", "CashReconciliation",
                entity_id_arg="reconciliation_id", actor_arg="secretary")
    def reject_discrepancy(
        self,
        reconciliation_id: UUID,
        secretary: Actor | None,
        notes: str,
    ) -> CashReconciliationDTO:
        """Send the count back.  Nothing is posted; ``notes`` is required."""
        secretary = require_actor(secretary, "cash.approve", self._permissions)
        if not notes or not notes.strip():
            raise MissingReasonError("reject a cash discrepancy")
        row = self._lock_for_review(reconciliation_id, secretary)

        row.status = ReconciliationStatus.REJECTED.value
        row.secretary_id = secretary.id
        row.secretary_notes = notes.strip()
        row.resolved_at = self._clock.now()
        row.updated_by_id = secretary.id
        self._session.flush()

        logger.info("reconciliation_rejected", extra={
            "reconciliation_id": str(row.id),
            "variance": row.variance,
        })
        return row.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def can_close_day(self) -> bool:
        return not self._ledger.pending_reconciliations()

    def get_pending_reconciliations(self) -> list[CashReconciliationDTO]:
        """PENDING reconciliations with a non-zero variance, oldest first."""
        return self._ledger.pending_reconciliations()

    def get_reconciliation(self, reconciliation_id: UUID) -> CashReconciliationDTO:
        row = self._ledger.get_reconciliation(reconciliation_id)
        if row is None:
            raise ReconciliationNotFoundError(reconciliation_id)
        return row

    def calculate_database_balance(self, as_of: date | None = None) -> Decimal:
        """Σ debit − Σ credit on the cash account through ``as_of``."""
        return round_money(
            self._ledger.account_balance(self._cash_code, as_of or self._clock.today())
        )
