"""
Pure domain layer.

Loan arithmetic, the payment waterfall, dividend arithmetic, status enums
and transition tables, roles and permissions, the clock and the DTOs.
Nothing here touches the ORM, the database or the wall clock.
"""

from coop_kernel.domain.accounts import DEFAULT_CHART, AccountDef, ChartOfAccounts
from coop_kernel.domain.allocation import Allocation, allocate_waterfall
from coop_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from coop_kernel.domain.identity import (
    SYSTEM_ACTOR_ID,
    Actor,
    Role,
    actor_id_of,
    can_manage,
    has_permission,
    parse_role,
    require_actor,
    require_permission,
)
from coop_kernel.domain.lifecycle import (
    DistributionStatus,
    LoanStatus,
    LoanType,
    NotificationStatus,
    PaymentStatus,
    ReconciliationStatus,
    SavingTransactionType,
    can_transition,
    require_transition,
)
from coop_kernel.domain.loan_math import PayoffQuote

__all__ = [
    "AccountDef",
    "Actor",
    "Allocation",
    "ChartOfAccounts",
    "Clock",
    "DEFAULT_CHART",
    "DeterministicClock",
    "DistributionStatus",
    "LoanStatus",
    "LoanType",
    "NotificationStatus",
    "PaymentStatus",
    "PayoffQuote",
    "ReconciliationStatus",
    "Role",
    "SYSTEM_ACTOR_ID",
    "SavingTransactionType",
    "SystemClock",
    "actor_id_of",
    "allocate_waterfall",
    "can_manage",
    "can_transition",
    "has_permission",
    "parse_role",
    "require_actor",
    "require_permission",
    "require_transition",
]
