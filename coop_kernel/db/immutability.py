"""
ORM-level immutability enforcement.

Responsibility:
    Mapper event listeners that stop application code from rewriting ledger
    history.  Checks run on ``before_update`` / ``before_delete``, before any
    SQL reaches the database, and raise ImmutabilityViolationError.

Protected entities:

    Entity                | When immutable                | Permitted change
    ----------------------|-------------------------------|---------------------------------
    AuditLog              | ALWAYS                        | none
    AccountingEntry       | ALWAYS                        | none
    DividendRecipient     | ALWAYS                        | none
    LoanBalance           | ALWAYS                        | forward_id/forward_date, once
    DividendDistribution  | after status = APPROVED       | none
    CashReconciliation    | after APPROVED or REJECTED    | none
    Payment               | from creation                 | COMPLETED -> VOID with void fields

    TrackedBase metadata (updated_at, updated_by_id) may change on any row.

Architecture position:
    Kernel > DB.  Imports models lazily inside functions to avoid circular
    imports (models import db.base).

Usage:
    create_tables() calls register_immutability_listeners().  Registration is
    idempotent.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from coop_kernel.exceptions import ImmutabilityViolationError
from coop_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id", "version_id"})

_LOAN_BALANCE_FORWARD_FIELDS = frozenset({"forward_id", "forward_date"})

_PAYMENT_VOID_FIELDS = frozenset({"status", "void_reason", "voided_by_id", "voided_at"})


def _changed_fields(target) -> set[str]:
    """Column attributes with pending changes, excluding row metadata."""
    state = inspect(target)
    return {
        attr.key
        for attr in state.attrs
        if attr.key not in _METADATA_FIELDS and attr.history.has_changes()
    }


def _previous_value(target, key: str):
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _block(target, operation: str, reason: str) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "db_operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =========================================================================
# Always-immutable rows
# =========================================================================


def _check_append_only_update(mapper, connection, target):
    changed = _changed_fields(target)
    if changed:
        _block(
            target,
            "UPDATE",
            f"{type(target).__name__} rows are append-only "
            f"(attempted change to {sorted(changed)})",
        )


def _check_append_only_delete(mapper, connection, target):
    _block(target, "DELETE", f"{type(target).__name__} rows cannot be deleted")


# =========================================================================
# LoanBalance
# =========================================================================


def _check_loan_balance_update(mapper, connection, target):
    changed = _changed_fields(target)
    if not changed:
        return
    illegal = changed - _LOAN_BALANCE_FORWARD_FIELDS
    if illegal:
        _block(
            target,
            "UPDATE",
            f"Balance snapshots are immutable (attempted change to {sorted(illegal)})",
        )
    for key in changed:
        if _previous_value(target, key) is not None:
            _block(target, "UPDATE", f"Snapshot {key} is already set")


# =========================================================================
# Status-gated rows
# =========================================================================


def _check_distribution_update(mapper, connection, target):
    from coop_kernel.domain.lifecycle import DistributionStatus

    if not _changed_fields(target):
        return
    if _previous_value(target, "status") == DistributionStatus.APPROVED.value:
        _block(target, "UPDATE", "Approved dividend distributions are immutable")


def _check_distribution_delete(mapper, connection, target):
    from coop_kernel.domain.lifecycle import DistributionStatus

    if _previous_value(target, "status") == DistributionStatus.APPROVED.value:
        _block(target, "DELETE", "Approved dividend distributions cannot be deleted")


def _check_reconciliation_update(mapper, connection, target):
    from coop_kernel.domain.lifecycle import ReconciliationStatus

    if not _changed_fields(target):
        return
    if _previous_value(target, "status") != ReconciliationStatus.PENDING.value:
        _block(target, "UPDATE", "Resolved cash reconciliations are immutable")


def _check_payment_update(mapper, connection, target):
    from coop_kernel.domain.lifecycle import PaymentStatus

    changed = _changed_fields(target)
    if not changed:
        return
    previous = _previous_value(target, "status")
    if previous != PaymentStatus.COMPLETED.value:
        _block(target, "UPDATE", f"Payment in status {previous} cannot be modified")
    illegal = changed - _PAYMENT_VOID_FIELDS
    if illegal:
        _block(
            target,
            "UPDATE",
            f"Only voiding may change a payment (attempted change to {sorted(illegal)})",
        )
    if target.status != PaymentStatus.VOID.value:
        _block(target, "UPDATE", "A completed payment may only move to VOID")


# =========================================================================
# Registration
# =========================================================================


def _listeners():
    from coop_kernel.models import (
        AccountingEntry,
        AuditLog,
        CashReconciliation,
        DividendDistribution,
        DividendRecipient,
        LoanBalance,
        Payment,
    )

    return [
        (AuditLog, "before_update", _check_append_only_update),
        (AuditLog, "before_delete", _check_append_only_delete),
        (AccountingEntry, "before_update", _check_append_only_update),
        (AccountingEntry, "before_delete", _check_append_only_delete),
        (DividendRecipient, "before_update", _check_append_only_update),
        (DividendRecipient, "before_delete", _check_append_only_delete),
        (LoanBalance, "before_update", _check_loan_balance_update),
        (LoanBalance, "before_delete", _check_append_only_delete),
        (DividendDistribution, "before_update", _check_distribution_update),
        (DividendDistribution, "before_delete", _check_distribution_delete),
        (CashReconciliation, "before_update", _check_reconciliation_update),
        (CashReconciliation, "before_delete", _check_append_only_delete),
        (Payment, "before_update", _check_payment_update),
        (Payment, "before_delete", _check_append_only_delete),
    ]


def register_immutability_listeners() -> None:
    """Register every immutability listener.  Safe to call repeatedly."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    WARNING: Only use this in tests that must write a forbidden change to
    check detection elsewhere.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
