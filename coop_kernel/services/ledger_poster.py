"""
LedgerPoster -- balanced double-entry postings to the general ledger.

Responsibility:
    Turns a list of ``AccountingLine`` values into AccountingEntry rows that
    share one reference, after checking that debits equal credits.

Architecture position:
    Kernel > Services.  Flush-only; called by the payment allocator, the
    savings service and the module services for disbursements, share
    deposits and cash adjustments.

Invariants enforced:
    - Σ debit == Σ credit for every posting, else UnbalancedEntryError and
      nothing is written.
    - Each line has exactly one non-zero side; zero lines are dropped.
    - fiscal_period is "YYYY-MM" of the transaction date.

Failure modes:
    - UnbalancedEntryError on mismatched totals or a line with both sides set.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from coop_kernel.db.types import ZERO, round_money
from coop_kernel.domain.dtos import AccountingEntryDTO, AccountingLine
from coop_kernel.exceptions import UnbalancedEntryError
from coop_kernel.logging_config import get_logger
from coop_kernel.models.accounting_entry import AccountingEntry
from coop_kernel.services.base import BaseService

logger = get_logger("services.ledger_poster")


def fiscal_period_of(on: date) -> str:
    return f"{on.year:04d}-{on.month:02d}"


def debit(code: str, name: str, amount: Decimal) -> AccountingLine:
    return AccountingLine(account_code=code, account_name=name, debit=amount)


def credit(code: str, name: str, amount: Decimal) -> AccountingLine:
    return AccountingLine(account_code=code, account_name=name, credit=amount)


class LedgerPoster(BaseService[AccountingEntry]):
    """
    Writes balanced postings.

    Contract:
        ``post()`` validates, adds and flushes all lines of one posting, or
        raises without adding any.
    """

    def post(
        self,
        lines: Sequence[AccountingLine],
        transaction_date: date,
        description: str,
        actor_id: UUID,
        reference_type: str | None = None,
        reference_id: object | None = None,
    ) -> list[AccountingEntryDTO]:
        rounded = [
            AccountingLine(
                account_code=line.account_code,
                account_name=line.account_name,
                debit=round_money(line.debit),
                credit=round_money(line.credit),
            )
            for line in lines
        ]
        for line in rounded:
            if line.debit != ZERO and line.credit != ZERO:
                raise UnbalancedEntryError(line.debit, line.credit)
            if line.debit < ZERO or line.credit < ZERO:
                raise UnbalancedEntryError(line.debit, line.credit)

        total_debits = sum((line.debit for line in rounded), ZERO)
        total_credits = sum((line.credit for line in rounded), ZERO)
        if total_debits != total_credits:
            logger.error(
                "unbalanced_posting_rejected",
                extra={
                    "debits": total_debits,
                    "credits": total_credits,
                    "reference_type": reference_type,
                },
            )
            raise UnbalancedEntryError(total_debits, total_credits)

        ref_id = str(reference_id) if reference_id is not None else None
        entries: list[AccountingEntry] = []
        for line in rounded:
            if line.debit == ZERO and line.credit == ZERO:
                continue
            entry = AccountingEntry(
                fiscal_period=fiscal_period_of(transaction_date),
                account_code=line.account_code,
                account_name=line.account_name,
                debit=line.debit,
                credit=line.credit,
                transaction_date=transaction_date,
                description=description,
                reference_type=reference_type,
                reference_id=ref_id,
                created_by_id=actor_id,
            )
            self.session.add(entry)
            entries.append(entry)
        self.session.flush()

        logger.info(
            "ledger_posted",
            extra={
                "reference_type": reference_type,
                "reference_id": ref_id,
                "line_count": len(entries),
                "total": total_debits,
            },
        )
        return [e.to_dto() for e in entries]
