"""
Lifecycle domain types (``coop_kernel.domain.lifecycle``).

Responsibility
--------------
Status enums for every stateful ledger entity and the transition tables that
define which status changes are legal.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Imported by
models/, services/ and the module layer.

Invariants enforced
-------------------
* ``LOAN_TRANSITIONS`` is the only source of legal loan status changes.
  Terminal statuses have no outgoing edges.
* DEFAULTED never transitions back to ACTIVE.
* Reconciliations, payment notifications and dividend distributions leave
  PENDING exactly once.
"""

from __future__ import annotations

from enum import Enum

from coop_kernel.exceptions import InvalidLoanTransitionError


# =========================================================================
# Loans
# =========================================================================


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"
    WRITTEN_OFF = "WRITTEN_OFF"
    REJECTED = "REJECTED"


LOAN_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE, LoanStatus.REJECTED}),
    LoanStatus.ACTIVE: frozenset({
        LoanStatus.COMPLETED,
        LoanStatus.DEFAULTED,
        LoanStatus.WRITTEN_OFF,
    }),
    LoanStatus.DEFAULTED: frozenset({
        LoanStatus.COMPLETED,
        LoanStatus.WRITTEN_OFF,
    }),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.WRITTEN_OFF: frozenset(),
}

TERMINAL_LOAN_STATUSES: frozenset[LoanStatus] = frozenset({
    LoanStatus.COMPLETED,
    LoanStatus.REJECTED,
    LoanStatus.WRITTEN_OFF,
})

PAYABLE_LOAN_STATUSES: frozenset[LoanStatus] = frozenset({
    LoanStatus.ACTIVE,
    LoanStatus.DEFAULTED,
})


def can_transition(from_status: LoanStatus, to_status: LoanStatus) -> bool:
    return to_status in LOAN_TRANSITIONS[LoanStatus(from_status)]


def require_transition(
    loan_id: object,
    from_status: LoanStatus | str,
    to_status: LoanStatus,
) -> LoanStatus:
    """Return ``to_status`` if the move is legal, else raise.

    Raises:
        InvalidLoanTransitionError: the transition table has no such edge.
    """
    from_status = LoanStatus(from_status)
    if not can_transition(from_status, to_status):
        raise InvalidLoanTransitionError(str(loan_id), from_status.value, to_status.value)
    return to_status


class LoanType(str, Enum):
    PERSONAL = "PERSONAL"
    BUSINESS = "BUSINESS"
    EDUCATION = "EDUCATION"
    HOUSING = "HOUSING"
    EMERGENCY = "EMERGENCY"


# =========================================================================
# Payments and notifications
# =========================================================================


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    VOID = "VOID"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# =========================================================================
# Cash reconciliation
# =========================================================================


class ReconciliationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# =========================================================================
# Dividends
# =========================================================================


class DistributionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"


# =========================================================================
# Savings
# =========================================================================


class SavingTransactionType(str, Enum):
    SHARE_DEPOSIT = "SHARE_DEPOSIT"
    SAVINGS_CREDIT = "SAVINGS_CREDIT"
    DIVIDEND_PAYOUT = "DIVIDEND_PAYOUT"
