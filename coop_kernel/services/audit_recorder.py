"""
AuditRecorder -- append-only audit trail and the ``with_audit`` decorator.

Responsibility:
    ``AuditRecorder`` writes AuditLog rows (flush-only) and reads them back
    by entity or by actor.  ``with_audit`` wraps a module service method so
    that the method becomes one audited unit of work: run, record, commit;
    or on failure roll back, record ``<ACTION>_FAILED``, commit, re-raise.

Architecture position:
    Kernel > Services.  ``with_audit`` is applied in ``coop_modules`` to
    methods of services that expose ``_session`` and ``_clock``.

Invariants enforced:
    - Every audited call with an actor leaves exactly one AuditLog row,
      whether it succeeded or failed.
    - A call without an actor runs normally but writes no audit row.
    - The original exception always reaches the caller; auditing never
      swallows or replaces it.
    - AuditLog rows are immutable (see db/immutability.py).

Failure modes:
    - If writing the ``_FAILED`` row itself fails, that secondary error is
      logged and the original exception is still re-raised.
    - StaleDataError from the version check surfaces as
      ConcurrentModificationError.

Audit relevance:
    old_state is the canonical JSON of the bound call arguments (excluding
    ``self`` and the actor); new_state is the canonical JSON of the result,
    or ``{error, error_type, error_code}`` on failure.
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from coop_kernel.domain.dtos import AuditLogDTO
from coop_kernel.domain.identity import Actor
from coop_kernel.exceptions import ConcurrentModificationError
from coop_kernel.logging_config import LogContext, get_logger
from coop_kernel.models.audit_log import AuditLog
from coop_kernel.services.base import BaseService
from coop_kernel.utils.serialization import canonicalize_json

logger = get_logger("services.audit_recorder")

FAILED_SUFFIX = "_FAILED"

F = TypeVar("F", bound=Callable[..., Any])


class AuditRecorder(BaseService[AuditLog]):
    """
    Writes and reads the audit trail.

    Contract:
        ``record()`` adds one AuditLog row and flushes.  It never commits.

    Guarantees:
        - occurred_at is taken from the injected clock.
        - actor username and role are copied onto the row, so the entry
          stays meaningful if the user is later renamed or re-roled.
    """

    def record(
        self,
        actor: Actor,
        action: str,
        entity_type: str,
        entity_id: Any,
        old_state: str | None = None,
        new_state: str | None = None,
    ) -> AuditLogDTO:
        row = AuditLog(
            actor_id=actor.id,
            actor_username=actor.username,
            actor_role=actor.role.value,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_state=old_state,
            new_state=new_state,
            occurred_at=self.clock.now(),
            created_by_id=actor.id,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "audit_recorded",
            extra={
                "action": action,
                "entity_type": entity_type,
                "entity_id": row.entity_id,
                "audit_actor": actor.username,
            },
        )
        return row.to_dto()

    def entries_for(self, entity_type: str, entity_id: Any) -> list[AuditLogDTO]:
        stmt = (
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == str(entity_id),
            )
            .order_by(AuditLog.occurred_at, AuditLog.created_at)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def entries_by_actor(self, actor_id: UUID) -> list[AuditLogDTO]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.actor_id == actor_id)
            .order_by(AuditLog.occurred_at, AuditLog.created_at)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def entries_for_action(self, action: str) -> list[AuditLogDTO]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.action == action)
            .order_by(AuditLog.occurred_at, AuditLog.created_at)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]


# =========================================================================
# Decorator
# =========================================================================


def _failure_state(exc: BaseException) -> str:
    return canonicalize_json({
        "error": str(exc),
        "error_type": type(exc).__name__,
        "error_code": getattr(exc, "code", None),
    })


def _flush_or_conflict(session: Session, entity_type: str, entity_id: Any) -> None:
    try:
        session.flush()
    except StaleDataError as exc:
        raise ConcurrentModificationError(entity_type, str(entity_id)) from exc


def _commit_or_conflict(session: Session, entity_type: str, entity_id: Any) -> None:
    try:
        session.commit()
    except StaleDataError as exc:
        raise ConcurrentModificationError(entity_type, str(entity_id)) from exc


def with_audit(
    action: str,
    entity_type: str,
    entity_id_arg: str | None = None,
    actor_arg: str = "actor",
) -> Callable[[F], F]:
    """
    Make a module service method an audited unit of work.

    Args:
        action: Audit action name, e.g. ``"APPROVE_DISCREPANCY"``.
        entity_type: Entity type recorded on the row, e.g. ``"CashReconciliation"``.
        entity_id_arg: Argument holding the entity id, used when the result
            carries no ``id`` (or the call fails).
        actor_arg: Name of the parameter carrying the ``Actor``.

    The wrapped method's instance must expose ``_session`` and ``_clock``.
    """

    def decorator(fn: F) -> F:
        signature = inspect.signature(fn)
        if actor_arg not in signature.parameters:
            raise TypeError(
                f"{fn.__qualname__} has no '{actor_arg}' parameter to audit"
            )

        @functools.wraps(fn)
        def wrapper(self, *args: Any, **kwargs: Any) -> Any:
            bound = signature.bind(self, *args, **kwargs)
            bound.apply_defaults()
            actor: Actor | None = bound.arguments.get(actor_arg)
            session: Session = self._session
            arg_entity_id = (
                bound.arguments.get(entity_id_arg) if entity_id_arg else None
            )

            if actor is None:
                logger.debug(
                    "audit_skipped_no_actor",
                    extra={"action": action, "entity_type": entity_type},
                )
                try:
                    result = fn(self, *args, **kwargs)
                    _flush_or_conflict(session, entity_type, arg_entity_id)
                    _commit_or_conflict(session, entity_type, arg_entity_id)
                except Exception:
                    session.rollback()
                    raise
                return result

            old_state = canonicalize_json({
                name: value
                for name, value in bound.arguments.items()
                if name not in ("self", actor_arg)
            })
            recorder = AuditRecorder(session, self._clock)

            with LogContext.bind(
                actor_id=str(actor.id),
                operation=action,
                correlation_id=str(uuid4()),
            ):
                try:
                    result = fn(self, *args, **kwargs)
                    _flush_or_conflict(session, entity_type, arg_entity_id)
                    result_id = getattr(result, "id", None)
                    recorder.record(
                        actor,
                        action,
                        entity_type,
                        result_id if result_id is not None else arg_entity_id,
                        old_state=old_state,
                        new_state=canonicalize_json(result),
                    )
                    _commit_or_conflict(session, entity_type, arg_entity_id)
                except Exception as exc:
                    session.rollback()
                    _record_failure(
                        recorder, actor, action, entity_type,
                        arg_entity_id, old_state, exc,
                    )
                    raise
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


def _record_failure(
    recorder: AuditRecorder,
    actor: Actor,
    action: str,
    entity_type: str,
    entity_id: Any,
    old_state: str,
    exc: Exception,
) -> None:
    failed_action = f"{action}{FAILED_SUFFIX}"
    logger.warning(
        "audited_operation_failed",
        extra={
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id) if entity_id is not None else None,
            "error_type": type(exc).__name__,
        },
    )
    try:
        recorder.record(
            actor,
            failed_action,
            entity_type,
            entity_id,
            old_state=old_state,
            new_state=_failure_state(exc),
        )
        recorder.session.commit()
    except Exception:
        recorder.session.rollback()
        logger.error(
            "audit_failure_record_failed",
            extra={"action": failed_action, "entity_type": entity_type},
            exc_info=True,
        )


__all__ = [
    "AuditRecorder",
    "FAILED_SUFFIX",
    "with_audit",
]
