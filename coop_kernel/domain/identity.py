"""
Identity -- actors, roles and permission decisions.

Responsibility:
    Defines the closed role enum of the cooperative, the ``Actor`` value
    passed explicitly into every operation that records "who did this", and
    the pure permission functions driven by a role -> permission-set map.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  The role -> permission map
    is supplied by the caller (normally from ``coop_config``).

Invariants enforced:
    - Roles form a strict hierarchy PRESIDENT > SECRETARY > OFFICER > MEMBER.
    - A role can manage only roles strictly below it.
    - Unknown roles have no permissions.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from coop_kernel.exceptions import PermissionDeniedError

# Actor id stamped on rows written by scheduled jobs (period close, overdue scan)
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")

_LEGACY_ROLE_PREFIX = "ROLE_"


class Role(str, Enum):
    PRESIDENT = "PRESIDENT"
    SECRETARY = "SECRETARY"
    OFFICER = "OFFICER"
    MEMBER = "MEMBER"


ROLE_HIERARCHY: tuple[Role, ...] = (
    Role.PRESIDENT,
    Role.SECRETARY,
    Role.OFFICER,
    Role.MEMBER,
)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    id: UUID
    username: str
    role: Role


def parse_role(value: str | Role) -> Role:
    """Parse a role name, accepting the legacy ``ROLE_`` prefix.

    Raises:
        ValueError: if the name is not a known role.
    """
    if isinstance(value, Role):
        return value
    name = value.strip().upper()
    if name.startswith(_LEGACY_ROLE_PREFIX):
        name = name[len(_LEGACY_ROLE_PREFIX):]
    try:
        return Role(name)
    except ValueError:
        raise ValueError(f"Unknown role: {value!r}") from None


def role_rank(role: Role) -> int:
    """0 for the most privileged role, increasing downwards."""
    return ROLE_HIERARCHY.index(role)


def can_manage(actor_role: Role, target_role: Role) -> bool:
    """True iff ``actor_role`` sits strictly above ``target_role``."""
    return role_rank(actor_role) < role_rank(target_role)


def has_permission(
    role: Role,
    permission: str,
    role_permissions: Mapping[Role, frozenset[str]],
) -> bool:
    return permission in role_permissions.get(role, frozenset())


def check_permission(
    actor: Actor,
    permission: str,
    role_permissions: Mapping[Role, frozenset[str]],
) -> tuple[bool, str]:
    """Decide whether ``actor`` may perform an action needing ``permission``.

    Returns:
        (allowed, reason).  reason is empty when allowed.
    """
    if has_permission(actor.role, permission, role_permissions):
        return (True, "")
    return (False, f"RBAC: permission '{permission}' not granted to role {actor.role.value}")


def require_permission(
    actor: Actor | None,
    permission: str,
    role_permissions: Mapping[Role, frozenset[str]],
) -> None:
    """Raise PermissionDeniedError unless ``actor`` holds ``permission``.

    A missing actor denotes an internal system call (period close, overdue
    scan) and is not checked here.
    """
    if actor is None:
        return
    if not has_permission(actor.role, permission, role_permissions):
        raise PermissionDeniedError(str(actor.id), actor.role.value, permission)


def require_actor(
    actor: Actor | None,
    permission: str,
    role_permissions: Mapping[Role, frozenset[str]],
) -> Actor:
    """Like ``require_permission`` but a missing actor is refused too.

    Used by workflows whose segregation-of-duty rules need a real person.
    """
    if actor is None:
        raise PermissionDeniedError("anonymous", "NONE", permission)
    require_permission(actor, permission, role_permissions)
    return actor


def actor_id_of(actor: Actor | None) -> UUID:
    """The actor's id, or ``SYSTEM_ACTOR_ID`` for internal calls."""
    return actor.id if actor is not None else SYSTEM_ACTOR_ID
