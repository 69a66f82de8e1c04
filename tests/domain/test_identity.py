"""
Tests for roles, the role hierarchy and permission decisions.
"""

from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from coop_kernel.domain.identity import (
    SYSTEM_ACTOR_ID,
    Actor,
    Role,
    actor_id_of,
    can_manage,
    check_permission,
    has_permission,
    parse_role,
    require_actor,
    require_permission,
)
from coop_kernel.exceptions import PermissionDeniedError


@pytest.fixture
def permissions():
    return {
        Role.PRESIDENT: frozenset({"loan.approve", "loan.create"}),
        Role.OFFICER: frozenset({"loan.create"}),
        Role.MEMBER: frozenset(),
    }


class TestParseRole:

    def test_plain_name(self):
        assert parse_role("OFFICER") is Role.OFFICER

    def test_legacy_prefix(self):
        assert parse_role("ROLE_OFFICER") is Role.OFFICER

    def test_case_and_whitespace(self):
        assert parse_role("  role_secretary ") is Role.SECRETARY

    def test_role_passthrough(self):
        assert parse_role(Role.PRESIDENT) is Role.PRESIDENT

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            parse_role("TREASURER")


class TestHierarchy:
    """PRESIDENT > SECRETARY > OFFICER > MEMBER."""

    @pytest.mark.parametrize(
        "actor,target,expected",
        [
            (Role.PRESIDENT, Role.SECRETARY, True),
            (Role.PRESIDENT, Role.MEMBER, True),
            (Role.SECRETARY, Role.OFFICER, True),
            (Role.OFFICER, Role.MEMBER, True),
            (Role.OFFICER, Role.OFFICER, False),
            (Role.OFFICER, Role.SECRETARY, False),
            (Role.MEMBER, Role.OFFICER, False),
            (Role.SECRETARY, Role.PRESIDENT, False),
        ],
    )
    def test_can_manage(self, actor, target, expected):
        assert can_manage(actor, target) is expected

    @given(a=st.sampled_from(Role), b=st.sampled_from(Role), c=st.sampled_from(Role))
    def test_strict_order(self, a, b, c):
        assert not can_manage(a, a)
        assert not (can_manage(a, b) and can_manage(b, a))
        if can_manage(a, b) and can_manage(b, c):
            assert can_manage(a, c)


class TestPermissions:

    def test_has_permission(self, permissions):
        assert has_permission(Role.PRESIDENT, "loan.approve", permissions)
        assert not has_permission(Role.OFFICER, "loan.approve", permissions)

    def test_unknown_role_has_nothing(self, permissions):
        assert not has_permission(Role.SECRETARY, "loan.create", permissions)

    def test_check_permission_reason(self, permissions):
        actor = Actor(uuid4(), "olive", Role.OFFICER)
        allowed, reason = check_permission(actor, "loan.approve", permissions)
        assert not allowed
        assert "loan.approve" in reason

    def test_require_permission_denied(self, permissions):
        actor = Actor(uuid4(), "olive", Role.OFFICER)
        with pytest.raises(PermissionDeniedError) as exc_info:
            require_permission(actor, "loan.approve", permissions)
        assert exc_info.value.code == "PERMISSION_DENIED"

    def test_require_permission_skips_system_calls(self, permissions):
        require_permission(None, "loan.approve", permissions)

    def test_require_actor_refuses_anonymous(self, permissions):
        with pytest.raises(PermissionDeniedError):
            require_actor(None, "loan.create", permissions)

    def test_require_actor_returns_actor(self, permissions):
        actor = Actor(uuid4(), "olive", Role.OFFICER)
        assert require_actor(actor, "loan.create", permissions) is actor

    def test_actor_id_of(self):
        actor = Actor(uuid4(), "olive", Role.OFFICER)
        assert actor_id_of(actor) == actor.id
        assert actor_id_of(None) == SYSTEM_ACTOR_ID
