"""
AuditLog model.

Append-only record of every audited operation: who, what action, on which
entity, and the JSON state before and after.  Rows are never updated or
deleted.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coop_kernel.db.base import TrackedBase, UUIDString
from coop_kernel.domain.dtos import AuditLogDTO


class AuditLog(TrackedBase):
    """
    One audit trail entry.

    Guarantees:
        - Immutable from creation.
        - occurred_at comes from the injected clock, not the database.
    """

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_actor", "actor_id"),
        Index("idx_audit_occurred_at", "occurred_at"),
    )

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_username: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    old_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"

    def to_dto(self) -> AuditLogDTO:
        return AuditLogDTO(
            id=self.id,
            actor_id=self.actor_id,
            actor_username=self.actor_username,
            actor_role=self.actor_role,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            old_state=self.old_state,
            new_state=self.new_state,
            occurred_at=self.occurred_at,
        )
