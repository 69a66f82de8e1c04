"""
coop_modules.dividends.service
==============================

Responsibility:
    Annual dividend run.  ``calculate_dividends`` freezes one recipient row
    per active member (dividend on share capital plus average return on the
    interest the member paid in the year); ``distribute_dividends`` pays
    each recipient into savings and approves the distribution.

Architecture:
    Module layer.  Per-member arithmetic is ``coop_kernel.domain
    .dividend_math``; payouts go through the kernel ``SavingsService``.

Invariants enforced:
    - One distribution per fiscal year.
    - Distribution totals equal the sums over its recipients.
    - Rates lie within the configured bounds (default [0, 100]).
    - Payout is all-or-nothing: any failure rolls back every credit.
    - An APPROVED distribution is immutable.

Failure modes:
    - DuplicateDistributionError, InvalidRateError on calculation.
    - DistributionNotFoundError, InvalidDistributionStateError on payout.

Audit relevance:
    ``DIVIDEND_CALCULATE`` and ``DIVIDEND_DISTRIBUTE`` are audited.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from coop_config import LedgerConfig, get_active_config
from coop_kernel.db.types import ZERO, round_money, to_decimal
from coop_kernel.domain.clock import Clock, SystemClock
from coop_kernel.domain.dividend_math import compute_member_dividend, summarize
from coop_kernel.domain.dtos import DividendDistributionDTO, DividendRecipientDTO
from coop_kernel.domain.identity import Actor, actor_id_of, require_permission
from coop_kernel.domain.lifecycle import DistributionStatus, SavingTransactionType
from coop_kernel.exceptions import (
    DistributionNotFoundError,
    DuplicateDistributionError,
    InvalidDistributionStateError,
    InvalidRateError,
)
from coop_kernel.logging_config import get_logger
from coop_kernel.models.dividend import DividendDistribution, DividendRecipient
from coop_kernel.selectors.ledger_selector import LedgerSelector
from coop_kernel.selectors.loan_selector import LoanSelector
from coop_kernel.selectors.member_selector import MemberSelector
from coop_kernel.services.audit_recorder import with_audit
from coop_kernel.services.ledger_poster import LedgerPoster, credit, debit
from coop_kernel.services.savings_service import SavingsService

logger = get_logger("modules.dividends.service")


class DividendService:
    """
    Dividend calculation and payout.

    Contract:
        Both mutating methods are audited units of work returning a
        ``DividendDistributionDTO`` with its recipients.
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
        self._policy = self._config.dividends
        self._chart = self._config.chart
        self._permissions = self._config.rbac.role_permissions

        self._ledger = LedgerSelector(session)
        self._loans = LoanSelector(session)
        self._members = MemberSelector(session)
        self._savings = SavingsService(session, self._clock)
        self._poster = LedgerPoster(session, self._clock)

    def _check_rate(self, rate: Decimal, field: str) -> Decimal:
        rate = to_decimal(rate)
        if rate < self._policy.min_rate or rate > self._policy.max_rate:
            raise InvalidRateError(rate, field)
        return rate

    # =========================================================================
    # Calculation
    # =========================================================================

    @with_audit("DIVIDEND_CALCULATE", "DividendDistribution", entity_id_arg="year")
    def calculate_dividends(
        self,
        year: int,
        dividend_rate: Decimal,
        average_return_rate: Decimal,
        actor: Actor | None,
        total_profit: Decimal | None = None,
    ) -> DividendDistributionDTO:
        """
        Compute and persist a PENDING distribution for ``year``.

        Raises:
            InvalidRateError: a rate outside the configured bounds.
            DuplicateDistributionError: the year already has a distribution.
        """
        require_permission(actor, "dividend.manage", self._permissions)
        dividend_rate = self._check_rate(dividend_rate, "dividend_rate")
        average_return_rate = self._check_rate(average_return_rate, "average_return_rate")
        if self._ledger.distribution_exists(year):
            raise DuplicateDistributionError(year)

        shares = [
            compute_member_dividend(
                member.id,
                member.share_capital,
                self._loans.interest_paid_by_member(member.id, year),
                dividend_rate,
                average_return_rate,
            )
            for member in self._members.active_members()
        ]
        totals = summarize(shares)

        actor_id = actor_id_of(actor)
        distribution = DividendDistribution(
            fiscal_year=year,
            dividend_rate=dividend_rate,
            average_return_rate=average_return_rate,
            total_profit=round_money(total_profit) if total_profit is not None else None,
            total_dividend_amount=totals.total_dividend_amount,
            total_average_return_amount=totals.total_average_return_amount,
            member_count=totals.member_count,
            status=DistributionStatus.PENDING.value,
            calculated_by_id=actor_id,
            created_by_id=actor_id,
        )
        self._session.add(distribution)
        self._session.flush()

        for share in shares:
            self._session.add(DividendRecipient(
                distribution_id=distribution.id,
                member_id=share.member_id,
                share_capital_snapshot=share.share_capital,
                interest_paid=share.interest_paid,
                dividend_amount=share.dividend_amount,
                average_return_amount=share.average_return_amount,
                total_amount=share.total_amount,
                created_by_id=actor_id,
            ))
        self._session.flush()

        logger.info("dividends_calculated", extra={
            "fiscal_year": year,
            "member_count": totals.member_count,
            "total_dividend_amount": totals.total_dividend_amount,
            "total_average_return_amount": totals.total_average_return_amount,
        })
        return distribution.to_dto(
            recipients=tuple(self._ledger.recipients_for(distribution.id))
        )

    # =========================================================================
    # Payout
    # =========================================================================

    @with_audit("DIVIDEND_DISTRIBUTE", "DividendDistribution", entity_id_arg="year")
    def distribute_dividends(self, year: int, actor: Actor | None) -> DividendDistributionDTO:
        """
        Credit every recipient's total to savings and approve the run.

        Recipients with a zero total receive nothing.
        """
        require_permission(actor, "dividend.manage", self._permissions)
        stmt = (
            select(DividendDistribution)
            .where(DividendDistribution.fiscal_year == year)
            .with_for_update()
        )
        distribution = self._session.scalars(stmt).first()
        if distribution is None:
            raise DistributionNotFoundError(year)
        if distribution.status != DistributionStatus.PENDING.value:
            raise InvalidDistributionStateError(year, distribution.status)

        actor_id = actor_id_of(actor)
        today = self._clock.today()
        paid_total = ZERO
        paid_count = 0
        for recipient in self._ledger.recipients_for(distribution.id):
            if recipient.total_amount <= 0:
                continue
            self._savings.credit(
                recipient.member_id,
                recipient.total_amount,
                f"Dividend payout {year}",
                actor_id,
                reference_type="DividendDistribution",
                reference_id=distribution.id,
                transaction_type=SavingTransactionType.DIVIDEND_PAYOUT,
                transaction_date=today,
            )
            paid_total += round_money(recipient.total_amount)
            paid_count += 1

        if paid_total > 0:
            c = self._chart
            self._poster.post(
                [
                    debit(c.dividends.code, c.dividends.name, paid_total),
                    credit(c.member_savings.code, c.member_savings.name, paid_total),
                ],
                transaction_date=today,
                description=f"Dividend distribution {year}",
                actor_id=actor_id,
                reference_type="DividendDistribution",
                reference_id=distribution.id,
            )

        distribution.status = DistributionStatus.APPROVED.value
        distribution.distributed_at = self._clock.now()
        distribution.distributed_by_id = actor_id
        distribution.updated_by_id = actor_id
        self._session.flush()

        logger.info("dividends_distributed", extra={
            "fiscal_year": year,
            "paid_count": paid_count,
            "paid_total": paid_total,
        })
        return distribution.to_dto(
            recipients=tuple(self._ledger.recipients_for(distribution.id))
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_distribution(self, year: int) -> DividendDistributionDTO:
        distribution = self._ledger.get_distribution(year)
        if distribution is None:
            raise DistributionNotFoundError(year)
        return distribution

    def list_recipients(self, year: int) -> list[DividendRecipientDTO]:
        return list(self.get_distribution(year).recipients)
