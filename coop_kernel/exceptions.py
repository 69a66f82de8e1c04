"""
Typed exception hierarchy for the cooperative ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (request handlers, batch jobs, tests) must be able to tell a bad input
from a broken business rule, a state conflict, an unknown id or a permission
problem without parsing message strings.  Every exception therefore:

  1. Has a TYPED class (catch by type, not message)
  2. Carries a class-level CODE (machine-readable, API-safe)
  3. Exposes structured DATA as attributes (loan_id, status, ...)

    try:
        service.approve_discrepancy(recon_id, secretary)
    except SelfApprovalError as e:
        respond(403, code=e.code, reconciliation=e.reconciliation_id)
    except InvalidReconciliationStateError as e:
        respond(409, code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CoopLedgerError (base)
    |
    +-- ValidationError                 malformed input, nothing mutated
    |   +-- InvalidAmountError
    |   +-- MissingReasonError
    |   +-- InvalidTermError
    |   +-- InvalidRateError
    |   +-- InvalidPeriodError
    |   +-- OverpaymentError
    |   +-- NotificationAmountError
    |
    +-- BusinessRuleError               valid input, rule forbids it
    |   +-- DuplicateDistributionError
    |   +-- DuplicateReconciliationError
    |   +-- DuplicateIdCardError
    |   +-- MemberUnderageError
    |   +-- MemberInactiveError
    |   +-- ActiveLoanExistsError
    |   +-- GuarantorLimitError
    |   +-- SelfGuaranteeError
    |   +-- LoanMemberMismatchError
    |
    +-- StateConflictError              entity is not in the required state
    |   +-- InvalidLoanTransitionError
    |   +-- LoanNotPayableError
    |   +-- InvalidReconciliationStateError
    |   +-- InvalidDistributionStateError
    |   +-- InvalidNotificationStateError
    |   +-- PeriodAlreadyClosedError
    |   +-- PaymentNotVoidableError
    |   +-- ConcurrentModificationError
    |
    +-- NotFoundError
    |   +-- LoanNotFoundError
    |   +-- MemberNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- ReconciliationNotFoundError
    |   +-- DistributionNotFoundError
    |   +-- NotificationNotFoundError
    |
    +-- AuthorizationError
    |   +-- PermissionDeniedError
    |   +-- SelfApprovalError
    |
    +-- LedgerIntegrityError
        +-- ImmutabilityViolationError
        +-- UnbalancedEntryError

Not-found and authorization errors are kept distinct for internal callers.  A
presentation layer may collapse them to avoid id enumeration.
"""

from decimal import Decimal
from typing import Any


class CoopLedgerError(Exception):
    """Base exception for all cooperative ledger errors."""

    code: str = "COOP_LEDGER_ERROR"

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(CoopLedgerError):
    """Malformed input rejected before any state is touched."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """A monetary amount is zero, negative or otherwise unusable."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal | None, field: str = "amount"):
        self.amount = amount
        self.field = field
        super().__init__(f"{field} must be greater than zero, got {amount}")


class MissingReasonError(ValidationError):
    """A reason or note is mandatory for this action."""

    code: str = "MISSING_REASON"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A non-empty reason is required to {action}")


class InvalidTermError(ValidationError):
    code: str = "INVALID_TERM"

    def __init__(self, term_months: int, min_term: int, max_term: int):
        self.term_months = term_months
        self.min_term = min_term
        self.max_term = max_term
        super().__init__(
            f"Loan term must be between {min_term} and {max_term} months, "
            f"got {term_months}"
        )


class InvalidRateError(ValidationError):
    code: str = "INVALID_RATE"

    def __init__(self, rate: Decimal, field: str = "rate"):
        self.rate = rate
        self.field = field
        super().__init__(f"{field} must be between 0 and 100, got {rate}")


class InvalidPeriodError(ValidationError):
    code: str = "INVALID_PERIOD"

    def __init__(self, month: int, year: int):
        self.month = month
        self.year = year
        super().__init__(f"Invalid period {year}-{month}")


class OverpaymentError(ValidationError):
    """Payment would drive the loan's outstanding principal below zero."""

    code: str = "OVERPAYMENT"

    def __init__(self, loan_id: str, amount: Decimal, payoff_amount: Decimal):
        self.loan_id = loan_id
        self.amount = amount
        self.payoff_amount = payoff_amount
        super().__init__(
            f"Payment {amount} exceeds payoff amount {payoff_amount} "
            f"for loan {loan_id}"
        )


class NotificationAmountError(ValidationError):
    code: str = "NOTIFICATION_AMOUNT_INVALID"

    def __init__(self, amount: Decimal, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Notification amount {amount} rejected: {reason}")


# =============================================================================
# Business rule violations
# =============================================================================


class BusinessRuleError(CoopLedgerError):
    """Input is well formed but a cooperative rule forbids the action."""

    code: str = "BUSINESS_RULE_VIOLATION"


class DuplicateDistributionError(BusinessRuleError):
    code: str = "DUPLICATE_DISTRIBUTION"

    def __init__(self, fiscal_year: int):
        self.fiscal_year = fiscal_year
        super().__init__(
            f"A dividend distribution already exists for fiscal year {fiscal_year}"
        )


class DuplicateReconciliationError(BusinessRuleError):
    code: str = "DUPLICATE_RECONCILIATION"

    def __init__(self, reconciliation_date: Any):
        self.reconciliation_date = reconciliation_date
        super().__init__(
            f"Cash reconciliation already exists for date {reconciliation_date}"
        )


class DuplicateIdCardError(BusinessRuleError):
    code: str = "DUPLICATE_ID_CARD"

    def __init__(self, id_card: str):
        self.id_card = id_card
        super().__init__("ID card already registered")


class MemberUnderageError(BusinessRuleError):
    code: str = "MEMBER_UNDERAGE"

    def __init__(self, age: int, min_age: int):
        self.age = age
        self.min_age = min_age
        super().__init__(f"Member must be at least {min_age} years old, got {age}")


class MemberInactiveError(BusinessRuleError):
    code: str = "MEMBER_INACTIVE"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member {member_id} is not active")


class ActiveLoanExistsError(BusinessRuleError):
    code: str = "ACTIVE_LOAN_EXISTS"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member {member_id} already has an active loan")


class GuarantorLimitError(BusinessRuleError):
    """Too many guarantors on a loan, or a guarantor already at capacity."""

    code: str = "GUARANTOR_LIMIT"

    def __init__(self, reason: str, member_id: str | None = None):
        self.reason = reason
        self.member_id = member_id
        super().__init__(reason)


class SelfGuaranteeError(BusinessRuleError):
    code: str = "SELF_GUARANTEE"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__("Borrower cannot be their own guarantor")


class LoanMemberMismatchError(BusinessRuleError):
    code: str = "LOAN_MEMBER_MISMATCH"

    def __init__(self, loan_id: str, member_id: str):
        self.loan_id = loan_id
        self.member_id = member_id
        super().__init__(f"Loan {loan_id} does not belong to member {member_id}")


# =============================================================================
# State conflicts
# =============================================================================


class StateConflictError(CoopLedgerError):
    """The entity is not in a state that permits the requested action."""

    code: str = "STATE_CONFLICT"


class InvalidLoanTransitionError(StateConflictError):
    code: str = "INVALID_LOAN_TRANSITION"

    def __init__(self, loan_id: str, from_status: str, to_status: str):
        self.loan_id = loan_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Loan {loan_id} cannot move from {from_status} to {to_status}"
        )


class LoanNotPayableError(StateConflictError):
    code: str = "LOAN_NOT_PAYABLE"

    def __init__(self, loan_id: str, status: str):
        self.loan_id = loan_id
        self.status = status
        super().__init__(f"Loan {loan_id} in status {status} cannot accept payments")


class InvalidReconciliationStateError(StateConflictError):
    code: str = "INVALID_RECONCILIATION_STATE"

    def __init__(self, reconciliation_id: str, current_status: str):
        self.reconciliation_id = reconciliation_id
        self.current_status = current_status
        super().__init__(
            f"Reconciliation {reconciliation_id} is not pending "
            f"(status: {current_status})"
        )


class InvalidDistributionStateError(StateConflictError):
    code: str = "INVALID_DISTRIBUTION_STATE"

    def __init__(self, fiscal_year: int, current_status: str):
        self.fiscal_year = fiscal_year
        self.current_status = current_status
        super().__init__(
            f"Dividend distribution for {fiscal_year} is {current_status}, "
            "expected PENDING"
        )


class InvalidNotificationStateError(StateConflictError):
    code: str = "INVALID_NOTIFICATION_STATE"

    def __init__(self, notification_id: str, current_status: str):
        self.notification_id = notification_id
        self.current_status = current_status
        super().__init__(
            f"Payment notification {notification_id} is not pending "
            f"(status: {current_status})"
        )


class PeriodAlreadyClosedError(StateConflictError):
    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, loan_id: str, balance_date: Any):
        self.loan_id = loan_id
        self.balance_date = balance_date
        super().__init__(
            f"Period ending {balance_date} is already closed for loan {loan_id}"
        )


class PaymentNotVoidableError(StateConflictError):
    code: str = "PAYMENT_NOT_VOIDABLE"

    def __init__(self, payment_id: str, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(f"Payment {payment_id} cannot be voided: {reason}")


class ConcurrentModificationError(StateConflictError):
    """Another transaction changed the row between read and write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently; retry the operation"
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(CoopLedgerError):
    code: str = "NOT_FOUND"

    entity_type: str = "Entity"

    def __init__(self, entity_id: Any):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class LoanNotFoundError(NotFoundError):
    code: str = "LOAN_NOT_FOUND"
    entity_type = "Loan"


class MemberNotFoundError(NotFoundError):
    code: str = "MEMBER_NOT_FOUND"
    entity_type = "Member"


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity_type = "Payment"


class ReconciliationNotFoundError(NotFoundError):
    code: str = "RECONCILIATION_NOT_FOUND"
    entity_type = "CashReconciliation"


class DistributionNotFoundError(NotFoundError):
    code: str = "DISTRIBUTION_NOT_FOUND"
    entity_type = "DividendDistribution"


class NotificationNotFoundError(NotFoundError):
    code: str = "NOTIFICATION_NOT_FOUND"
    entity_type = "PaymentNotification"


# =============================================================================
# Authorization
# =============================================================================


class AuthorizationError(CoopLedgerError):
    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, role: str, permission: str):
        self.actor_id = actor_id
        self.role = role
        self.permission = permission
        super().__init__(f"Role {role} lacks permission '{permission}'")


class SelfApprovalError(AuthorizationError):
    """Segregation of duties: the reviewer created the record under review."""

    code: str = "SELF_APPROVAL_DENIED"

    def __init__(self, entity_type: str, entity_id: str, actor_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} cannot approve or reject {entity_type} "
            f"{entity_id} they created"
        )


# =============================================================================
# Ledger integrity
# =============================================================================


class LedgerIntegrityError(CoopLedgerError):
    code: str = "LEDGER_INTEGRITY_ERROR"


class ImmutabilityViolationError(LedgerIntegrityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class UnbalancedEntryError(LedgerIntegrityError):
    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Entry is unbalanced: debits={debits}, credits={credits}")
