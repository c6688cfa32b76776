"""Tests for role levels, the super role and assignment authority."""

import pytest

from orgauth.core import constants as c
from orgauth.core.exceptions import AuthorizationError, ResourceConflictError, ValidationError
from orgauth.models.role import Role
from orgauth.services.role_hierarchy import (
    AssignedRole, NoRole, count_super_holders, is_super_role,
    organization_types_for_role, role_ref, validate_custom_role_level, validate_role_change,
)


class TestRoleRef:

    def test_no_role(self):
        ref = role_ref(None)
        assert isinstance(ref, NoRole)
        assert ref.level == 0
        assert ref.is_super is False

    def test_assigned_role(self, roles):
        ref = role_ref(roles["company_admin"])
        assert isinstance(ref, AssignedRole)
        assert (ref.level, ref.name) == (50, "company_admin")
        assert not ref.is_super

    @pytest.mark.parametrize("name,predefined,level", [
        ("super_admin", None, 10),
        ("root", "super_admin", 10),
        ("apex", None, 100),
    ])
    def test_super_detection(self, name, predefined, level):
        assert is_super_role(Role(name=name, predefined_name=predefined, level=level))

    def test_regular_role_not_super(self, roles):
        assert not is_super_role(roles["platform_admin"])
        assert not is_super_role(None)


class TestValidateRoleChange:

    def test_self_change_forbidden(self, db, make_user, roles):
        admin = make_user("admin", "platform_admin")
        with pytest.raises(AuthorizationError, match="own role"):
            validate_role_change(db, admin, admin, roles["store_admin"])

    def test_actor_without_role(self, db, make_user, roles):
        actor, target = make_user("actor"), make_user("target")
        with pytest.raises(AuthorizationError) as exc:
            validate_role_change(db, actor, target, roles["store_admin"])
        assert exc.value.message == c.MSG_CURRENT_USER_HAS_NO_ROLE

    @pytest.mark.parametrize("actor_role,new_role,allowed", [
        ("company_admin", "store_admin", True),
        ("company_admin", "company_admin", False),
        ("company_admin", "holding_admin", False),
        ("store_admin", "user", True),
        ("holding_admin", "company_admin", True),
    ])
    def test_strict_descent(self, db, make_user, roles, actor_role, new_role, allowed):
        actor, target = make_user("actor", actor_role), make_user("target")
        if allowed:
            validate_role_change(db, actor, target, roles[new_role])
        else:
            with pytest.raises(AuthorizationError):
                validate_role_change(db, actor, target, roles[new_role])

    def test_target_at_or_above_actor(self, db, make_user, roles):
        actor = make_user("actor", "company_admin")
        peer = make_user("peer", "company_admin")
        with pytest.raises(AuthorizationError):
            validate_role_change(db, actor, peer, roles["store_admin"])
        with pytest.raises(AuthorizationError):
            validate_role_change(db, actor, peer, None)

    def test_revoke_from_lower_target(self, db, make_user):
        actor = make_user("actor", "company_admin")
        target = make_user("target", "store_admin")
        validate_role_change(db, actor, target, None)

    def test_only_super_modifies_super(self, db, make_user, super_admin, roles):
        actor = make_user("actor", "platform_admin")
        with pytest.raises(AuthorizationError) as exc:
            validate_role_change(db, actor, super_admin, roles["store_admin"])
        assert exc.value.message == c.MSG_ONLY_SUPER_ADMIN_CAN_MODIFY

    def test_only_super_assigns_super(self, db, make_user, roles):
        actor = make_user("actor", "platform_admin")
        target = make_user("target")
        with pytest.raises(AuthorizationError) as exc:
            validate_role_change(db, actor, target, roles["super_admin"])
        assert exc.value.message == c.MSG_ONLY_SUPER_ADMIN_CAN_ASSIGN

    def test_second_super_holder_conflicts(self, db, make_user, super_admin, roles):
        target = make_user("target", "platform_admin")
        with pytest.raises(ResourceConflictError):
            validate_role_change(db, super_admin, target, roles["super_admin"])
        with pytest.raises(ResourceConflictError):
            validate_role_change(db, super_admin, None, roles["super_admin"])

    def test_super_assigns_platform_admin(self, db, make_user, super_admin, roles):
        validate_role_change(db, super_admin, make_user("target"), roles["platform_admin"])


class TestCustomRoleLevel:

    def test_within_band(self):
        validate_custom_role_level(40, 50)

    @pytest.mark.parametrize("level", [50, 60])
    def test_not_below_actor(self, level):
        with pytest.raises(AuthorizationError):
            validate_custom_role_level(level, 50)

    @pytest.mark.parametrize("level", [0, 9])
    def test_outside_band(self, level):
        with pytest.raises(ValidationError):
            validate_custom_role_level(level, 50)

    def test_super_cannot_create_level_100(self):
        with pytest.raises(AuthorizationError):
            validate_custom_role_level(100, 100)

    def test_super_creates_level_99(self):
        validate_custom_role_level(99, 100)


def test_count_super_holders(db, make_user, super_admin):
    make_user("someone", "platform_admin")
    assert count_super_holders(db) == 1


def test_organization_types_for_role(db, roles):
    assert organization_types_for_role(db, roles["store_admin"].id) == ["store"]
    assert organization_types_for_role(db, roles["super_admin"].id) == sorted(
        c.ROLE_ORGANIZATION_TYPES
    )
