"""
coop_modules.close.service
==========================

Responsibility:
    Month-end close across the loan book and the daily overdue scan.  The
    per-loan snapshot arithmetic lives in the kernel ``PeriodCloser``; this
    service drives it and owns one transaction per loan.

Architecture:
    Module layer.  Normally run by a scheduler, so the actor is optional
    and defaults to the system actor.

Invariants enforced:
    - Running ``close_month`` twice for the same period writes nothing the
      second time; every loan is reported as skipped.
    - One loan's failure never aborts the rest of the run.
    - An integrity error counts as a skip only when the snapshot for the
      period exists afterwards (a concurrent closer wrote it).
    - The overdue scan only moves ACTIVE -> DEFAULTED.

Failure modes:
    - InvalidPeriodError for a month outside 1..12.
    - Per-loan failures are logged as ``loan_close_failed`` and counted in
      ``CloseMonthResult.failed``.

Audit relevance:
    Each run logs ``period_close_started`` / ``period_close_completed`` with
    the counts; each loan logs its own outcome.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coop_config import LedgerConfig, get_active_config
from coop_kernel.domain.clock import Clock, SystemClock
from coop_kernel.domain.dtos import CloseMonthResult, LoanBalanceDTO
from coop_kernel.domain.identity import Actor, actor_id_of, require_permission
from coop_kernel.domain.lifecycle import LoanStatus
from coop_kernel.domain.loan_math import month_end
from coop_kernel.exceptions import InvalidPeriodError
from coop_kernel.logging_config import LogContext, get_logger
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.services.period_closer import PeriodCloser
from coop_modules.loans.helpers import accrual_terms

logger = get_logger("modules.close.service")


class PeriodCloseService:
    """
    Monthly close and overdue detection.

    Contract:
        ``close_month`` commits each loan separately and always returns a
        ``CloseMonthResult``; only an invalid period raises.

    Transaction boundary:
        One commit (or rollback) per loan.  ``check_and_flag_overdue_loans``
        commits once for the whole scan.
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
        self._policy = self._config.loans
        self._permissions = self._config.rbac.role_permissions

        self._loans = LoanSelector(session)
        self._closer = PeriodCloser(session, self._clock, accrual_terms(self._policy))

    def close_month(
        self,
        month: int,
        year: int,
        actor: Actor | None = None,
    ) -> CloseMonthResult:
        """Snapshot every loan in a closeable status for (year, month)."""
        if not 1 <= month <= 12:
            raise InvalidPeriodError(month, year)
        require_permission(actor, "period.close", self._permissions)

        actor_id = actor_id_of(actor)
        period_end = month_end(year, month)
        statuses = [LoanStatus(s) for s in self._policy.close_statuses]
        loan_ids = self._loans.loan_ids_by_status(statuses)
        # Release the read transaction before the per-loan units of work
        self._session.rollback()

        closed: list[UUID] = []
        skipped: list[UUID] = []
        failed: list[UUID] = []

        with LogContext.bind(operation="close_month", actor_id=str(actor_id)):
            logger.info("period_close_started", extra={
                "period_end": period_end,
                "loan_count": len(loan_ids),
            })
            for loan_id in loan_ids:
                try:
                    snapshot = self._closer.close_loan(loan_id, month, year, actor_id)
                    self._session.commit()
                except IntegrityError:
                    self._session.rollback()
                    if self._loans.snapshot_exists(loan_id, period_end):
                        logger.info("loan_close_raced", extra={"loan_id": str(loan_id)})
                        skipped.append(loan_id)
                    else:
                        logger.error(
                            "loan_close_failed",
                            extra={"loan_id": str(loan_id), "period_end": period_end},
                            exc_info=True,
                        )
                        failed.append(loan_id)
                    continue
                except Exception:
                    self._session.rollback()
                    logger.error(
                        "loan_close_failed",
                        extra={"loan_id": str(loan_id), "period_end": period_end},
                        exc_info=True,
                    )
                    failed.append(loan_id)
                    continue

                if snapshot is None:
                    skipped.append(loan_id)
                else:
                    closed.append(loan_id)

            logger.info("period_close_completed", extra={
                "period_end": period_end,
                "closed": len(closed),
                "skipped": len(skipped),
                "failed": len(failed),
            })

        return CloseMonthResult(
            month=month,
            year=year,
            period_end=period_end,
            closed=tuple(closed),
            skipped=tuple(skipped),
            failed=tuple(failed),
        )

    def check_and_flag_overdue_loans(
        self,
        today: date | None = None,
        actor: Actor | None = None,
    ) -> list[UUID]:
        """ACTIVE loans past maturity with a balance become DEFAULTED."""
        require_permission(actor, "period.close", self._permissions)
        try:
            flagged = self._closer.flag_overdue(
                today or self._clock.today(), actor_id_of(actor)
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info("overdue_scan_completed", extra={"flagged": len(flagged)})
        return flagged

    def get_loan_balances(self, loan_id: UUID) -> list[LoanBalanceDTO]:
        """Every snapshot for the loan, oldest first."""
        return self._loans.snapshots_for_loan(loan_id)
