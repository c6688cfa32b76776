"""Tests for custom roles and the permission catalogue."""

import json
from unittest import mock

import pytest
import redis

from orgauth.core.exceptions import (
    AuthorizationError, ResourceConflictError, ResourceNotFoundError, ValidationError,
)
from orgauth.models.role import Permission, Role
from orgauth.services.role_service import PermissionService, RoleService


@pytest.fixture
def role_service(authorization):
    return RoleService(authorization)


@pytest.fixture
def permission_service(authorization):
    return PermissionService(authorization)


class TestCreateRole:

    def test_create_below_own_level(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(
            db, actor, "shift_lead", 40, permission_names=["users:read"],
            organization_types=["store"],
        )
        assert role.level == 40
        assert [p.name for p in role.permissions] == ["users:read"]
        assert role.organization_type_names == ["store"]
        assert role.is_system is False

    def test_defaults_to_all_organization_types(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(db, actor, "auditor", 20)
        assert role.organization_type_names == ["company", "holding", "platform", "store"]

    def test_above_own_level_forbidden_and_nothing_inserted(self, db, roles, make_user, role_service):
        # Caller at level 40 attempts level 50.
        level_40 = Role(name="level_forty", level=40)
        db.add(level_40)
        db.commit()
        actor = make_user("actor")
        actor.role_id = level_40.id
        db.commit()

        before = db.query(Role).count()
        with pytest.raises(AuthorizationError):
            role_service.create_role(db, actor, "too_high", 50)
        assert db.query(Role).count() == before
        assert db.query(Role).filter_by(name="too_high").first() is None

    def test_outside_band(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        with pytest.raises(ValidationError):
            role_service.create_role(db, actor, "guest", 5)

    def test_duplicate_name(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        with pytest.raises(ResourceConflictError):
            role_service.create_role(db, actor, "store_admin", 20)

    def test_unknown_permission(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        with pytest.raises(ResourceNotFoundError):
            role_service.create_role(db, actor, "x", 20, permission_names=["nope:none"])

    def test_bad_organization_type(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        with pytest.raises(ValidationError):
            role_service.create_role(db, actor, "x", 20, organization_types=["galaxy"])

    def test_actor_without_role(self, db, make_user, role_service):
        with pytest.raises(AuthorizationError):
            role_service.create_role(db, make_user("actor"), "x", 20)


class TestListAndQuery:

    def test_lists_only_lower_levels(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        names = [r.name for r in role_service.list_roles(db, actor)]
        assert names == ["store_admin", "user"]

    def test_super_role_never_listed(self, db, super_admin, role_service):
        names = [r.name for r in role_service.list_roles(db, super_admin)]
        assert "super_admin" not in names
        assert "platform_admin" in names

    def test_roles_for_organization_type(self, db, make_user, role_service):
        actor = make_user("actor", "holding_admin")
        names = [r.name for r in role_service.get_roles_for_organization_type(db, actor, "store")]
        assert names == ["store_admin", "user"]

    @pytest.mark.parametrize("level,expected", [
        (100, ["platform_admin", "holding_admin", "company_admin", "store_admin"]),
        (75, ["company_admin", "store_admin"]),
        (25, []),
        (0, ["company_admin", "store_admin"]),
    ])
    def test_predefined_options(self, role_service, level, expected):
        assert [o["name"] for o in role_service.get_predefined_role_options(level)] == expected


class TestUpdateAndDelete:

    def test_system_role_cannot_be_renamed(self, db, make_user, roles, role_service):
        actor = make_user("actor", "platform_admin")
        with pytest.raises(ValidationError):
            role_service.update_role(db, actor, roles["store_admin"].id, name="renamed")

    def test_update_description(self, db, make_user, roles, role_service):
        actor = make_user("actor", "platform_admin")
        role = role_service.update_role(db, actor, roles["store_admin"].id, description="Stores")
        assert role.description == "Stores"

    def test_cannot_touch_peer_level(self, db, make_user, roles, role_service):
        actor = make_user("actor", "company_admin")
        with pytest.raises(AuthorizationError):
            role_service.update_role(db, actor, roles["company_admin"].id, description="x")

    def test_super_role_only_by_super(self, db, make_user, roles, role_service):
        actor = make_user("actor", "platform_admin")
        with pytest.raises(AuthorizationError):
            role_service.update_role(db, actor, roles["super_admin"].id, description="x")

    def test_delete_refused_for_system_role(self, db, super_admin, roles, role_service):
        with pytest.raises(ValidationError):
            role_service.delete_role(db, super_admin, roles["store_admin"].id)

    def test_delete_refused_while_assigned(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(db, actor, "temp", 20)
        holder = make_user("holder")
        holder.role_id = role.id
        db.commit()
        with pytest.raises(ResourceConflictError):
            role_service.delete_role(db, actor, role.id)

    def test_delete_unused_role(self, db, make_user, role_service, fake_redis):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(db, actor, "temp", 20)
        fake_redis.set(f"permissions:role:{role.id}", "[]")
        role_service.delete_role(db, actor, role.id)
        with pytest.raises(ResourceNotFoundError):
            role_service.get_role(db, role.id)
        assert fake_redis.get(f"permissions:role:{role.id}") is None


class TestUpdateRolePermissions:

    def test_replace_then_check(self, db, make_user, authorization, role_service):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(db, actor, "reader", 20, permission_names=["users:read"])
        assert not authorization.check_permission(db, role.id, "users:update")

        role_service.update_role_permissions(db, actor, role.id, ["users:read", "users:update"])
        assert authorization.check_permission(db, role.id, "users:update")
        assert authorization.check_permission(db, role.id, "users:read")
        assert not authorization.check_permission(db, role.id, "never:assigned")

    def test_cache_refreshed_after_replace(self, db, make_user, authorization, role_service, fake_redis):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(db, actor, "reader", 20, permission_names=["users:read"])
        authorization.get_and_cache_permissions_for_role(db, role.id)

        role_service.update_role_permissions(db, actor, role.id, ["history:read"])
        assert fake_redis.get(f"permissions:role:{role.id}") is None
        assert authorization.get_and_cache_permissions_for_role(db, role.id) == ["history:read"]
        assert json.loads(fake_redis.get(f"permissions:role:{role.id}")) == ["history:read"]

    def test_unknown_permission_changes_nothing(self, db, make_user, role_service):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(db, actor, "reader", 20, permission_names=["users:read"])
        with pytest.raises(ResourceNotFoundError):
            role_service.update_role_permissions(db, actor, role.id, ["users:update", "bogus"])
        db.refresh(role)
        assert [p.name for p in role.permissions] == ["users:read"]

    def test_invalidation_failure_still_succeeds(
        self, db, make_user, role_service, permission_cache, caplog,
    ):
        actor = make_user("actor", "company_admin")
        role = role_service.create_role(db, actor, "reader", 20)
        with mock.patch.object(permission_cache, "invalidate", side_effect=redis.ConnectionError()):
            updated = role_service.update_role_permissions(db, actor, role.id, ["users:read"])
        assert [p.name for p in updated.permissions] == ["users:read"]
        assert "stale until TTL expiry" in caplog.text


class TestPermissions:

    def test_create_and_duplicate(self, db, permission_service):
        permission_service.create_permission(db, "reports:read", "Read reports")
        with pytest.raises(ResourceConflictError):
            permission_service.create_permission(db, "reports:read")

    def test_rename_invalidates_referencing_roles(
        self, db, roles, authorization, permission_service, fake_redis,
    ):
        role_id = roles["store_admin"].id
        authorization.get_and_cache_permissions_for_role(db, role_id)
        permission = db.query(Permission).filter_by(name="history:read").one()

        permission_service.update_permission(db, permission.id, name="history:view")
        assert fake_redis.get(f"permissions:role:{role_id}") is None
        assert "history:view" in authorization.get_and_cache_permissions_for_role(db, role_id)

    def test_delete_refused_while_referenced(self, db, permission_service):
        permission = db.query(Permission).filter_by(name="users:read").one()
        with pytest.raises(ResourceConflictError):
            permission_service.delete_permission(db, permission.id)

    def test_delete_unreferenced(self, db, permission_service):
        permission = permission_service.create_permission(db, "reports:read")
        permission_service.delete_permission(db, permission.id)
        with pytest.raises(ResourceNotFoundError):
            permission_service.get_permission(db, permission.id)
