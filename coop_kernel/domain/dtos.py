"""
DTOs -- immutable records returned across the service boundary.

Responsibility:
    Frozen dataclasses mirroring each persisted ledger entity, plus the
    result types of ledger operations.  Services hand these to callers
    instead of live ORM instances, so nothing outside a unit of work can
    mutate persistent state by accident.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  ORM models expose ``to_dto()``
    returning the matching type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from coop_kernel.domain.lifecycle import (
    DistributionStatus,
    LoanStatus,
    NotificationStatus,
    PaymentStatus,
    ReconciliationStatus,
    SavingTransactionType,
)


# =========================================================================
# Members and savings
# =========================================================================


@dataclass(frozen=True)
class MemberDTO:
    id: UUID
    member_number: str
    full_name: str
    id_card: str
    date_of_birth: date
    is_active: bool
    share_capital: Decimal
    savings_balance: Decimal
    joined_on: date


@dataclass(frozen=True)
class SavingTransactionDTO:
    id: UUID
    member_id: UUID
    transaction_type: SavingTransactionType
    amount: Decimal
    balance_after: Decimal
    transaction_date: date
    reason: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None


# =========================================================================
# Loans
# =========================================================================


@dataclass(frozen=True)
class LoanDTO:
    id: UUID
    loan_number: str
    member_id: UUID
    loan_type: str
    principal: Decimal
    requested_amount: Decimal
    interest_rate: Decimal
    term_months: int
    status: LoanStatus
    outstanding_balance: Decimal
    paid_principal: Decimal
    paid_interest: Decimal
    paid_penalty: Decimal
    penalty_accrued: Decimal
    interest_accrued: Decimal
    start_date: date | None = None
    maturity_date: date | None = None
    last_payment_date: date | None = None
    interest_accrued_through: date | None = None
    penalty_assessed_through: date | None = None
    approved_by_id: UUID | None = None
    approved_on: date | None = None
    disbursed_on: date | None = None
    rejection_reason: str | None = None
    written_off_amount: Decimal | None = None
    purpose: str | None = None


@dataclass(frozen=True)
class GuarantorDTO:
    id: UUID
    loan_id: UUID
    member_id: UUID
    is_active: bool
    guarantee_end_date: date | None = None


@dataclass(frozen=True)
class PaymentDTO:
    id: UUID
    payment_number: str
    loan_id: UUID
    member_id: UUID
    amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    penalty_amount: Decimal
    payment_date: date
    status: PaymentStatus
    notes: str | None = None
    void_reason: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of allocating one payment against a loan."""

    payment_id: UUID
    loan_id: UUID
    amount: Decimal
    principal: Decimal
    interest: Decimal
    penalty: Decimal
    outstanding_balance: Decimal
    loan_status: LoanStatus


@dataclass(frozen=True)
class CompositePaymentResult:
    member_id: UUID
    share_amount: Decimal
    share_capital_after: Decimal
    payment: PaymentResult | None = None


@dataclass(frozen=True)
class PaymentNotificationDTO:
    id: UUID
    member_id: UUID
    loan_id: UUID
    amount: Decimal
    status: NotificationStatus
    submitted_by_id: UUID
    notes: str | None = None
    reviewed_by_id: UUID | None = None
    review_notes: str | None = None
    payment_id: UUID | None = None


# =========================================================================
# Period close
# =========================================================================


@dataclass(frozen=True)
class LoanBalanceDTO:
    id: UUID
    loan_id: UUID
    balance_date: date
    opening_principal: Decimal
    closing_principal: Decimal
    opening_interest: Decimal
    closing_interest: Decimal
    opening_penalty: Decimal
    closing_penalty: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    penalty_paid: Decimal
    total_paid: Decimal
    interest_accrued: Decimal
    penalty_accrued: Decimal
    payment_count: int
    average_payment: Decimal
    days_in_arrears: int
    forward_id: UUID | None = None
    forward_date: date | None = None


@dataclass(frozen=True)
class CloseMonthResult:
    month: int
    year: int
    period_end: date
    closed: tuple[UUID, ...] = ()
    skipped: tuple[UUID, ...] = ()
    failed: tuple[UUID, ...] = ()


# =========================================================================
# Dividends
# =========================================================================


@dataclass(frozen=True)
class DividendRecipientDTO:
    id: UUID
    distribution_id: UUID
    member_id: UUID
    share_capital_snapshot: Decimal
    interest_paid: Decimal
    dividend_amount: Decimal
    average_return_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class DividendDistributionDTO:
    id: UUID
    fiscal_year: int
    dividend_rate: Decimal
    average_return_rate: Decimal
    total_dividend_amount: Decimal
    total_average_return_amount: Decimal
    member_count: int
    status: DistributionStatus
    total_profit: Decimal | None = None
    calculated_by_id: UUID | None = None
    distributed_at: datetime | None = None
    distributed_by_id: UUID | None = None
    recipients: tuple[DividendRecipientDTO, ...] = field(default=())


# =========================================================================
# Cash reconciliation and accounting
# =========================================================================


@dataclass(frozen=True)
class CashReconciliationDTO:
    id: UUID
    reconciliation_date: date
    officer_id: UUID
    physical_count: Decimal
    database_balance: Decimal
    variance: Decimal
    status: ReconciliationStatus
    officer_notes: str | None = None
    secretary_id: UUID | None = None
    secretary_notes: str | None = None
    resolved_at: datetime | None = None

    @property
    def has_variance(self) -> bool:
        return self.variance != 0


@dataclass(frozen=True)
class AccountingLine:
    """One side of a balanced accounting entry, before persistence."""

    account_code: str
    account_name: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")


@dataclass(frozen=True)
class AccountingEntryDTO:
    id: UUID
    fiscal_period: str
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal
    transaction_date: date
    description: str
    reference_type: str | None = None
    reference_id: str | None = None


# =========================================================================
# Audit
# =========================================================================


@dataclass(frozen=True)
class AuditLogDTO:
    id: UUID
    actor_id: UUID
    actor_username: str
    actor_role: str
    action: str
    entity_type: str
    entity_id: str | None
    old_state: str | None
    new_state: str | None
    occurred_at: datetime
