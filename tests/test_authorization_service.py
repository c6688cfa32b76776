"""Tests for permission decisions, organization isolation and cache coherency."""

import json
import logging
from unittest import mock

import pytest
import redis

from orgauth.core.exceptions import ResourceNotFoundError
from orgauth.models.role import Permission


class TestCheckPermission:

    def test_super_role_bypasses_cache(self, db, roles, authorization, permission_cache):
        with mock.patch.object(permission_cache, "get") as cache_get, \
                mock.patch.object(permission_cache, "set") as cache_set:
            assert authorization.check_permission(db, roles["super_admin"].id, "anything:at_all")
        cache_get.assert_not_called()
        cache_set.assert_not_called()

    def test_grant_and_deny(self, db, roles, authorization):
        role_id = roles["company_admin"].id
        assert authorization.check_permission(db, role_id, "users:read")
        assert not authorization.check_permission(db, role_id, "permissions:manage")

    def test_unknown_role_denied(self, db, authorization):
        assert authorization.check_permission(db, 9999, "users:read") is False

    def test_miss_populates_sorted_entry(self, db, roles, authorization, fake_redis):
        role_id = roles["store_admin"].id
        names = authorization.get_and_cache_permissions_for_role(db, role_id)
        assert names == sorted(names)
        assert json.loads(fake_redis.get(f"permissions:role:{role_id}")) == names
        assert fake_redis.ttls[f"permissions:role:{role_id}"] == 900

    def test_hit_skips_database(self, db, roles, authorization, permission_cache):
        role_id = roles["store_admin"].id
        permission_cache.set(role_id, ["cached:only"])
        assert authorization.get_and_cache_permissions_for_role(db, role_id) == ["cached:only"]

    def test_super_role_lists_live_catalogue(self, db, roles, authorization, fake_redis):
        db.add(Permission(name="zeta:new"))
        db.commit()
        names = authorization.get_and_cache_permissions_for_role(db, roles["super_admin"].id)
        assert names == sorted(p.name for p in db.query(Permission).all())
        assert "zeta:new" in names
        assert fake_redis.get(f"permissions:role:{roles['super_admin'].id}") is None

    def test_missing_role_raises(self, db, authorization):
        with pytest.raises(ResourceNotFoundError):
            authorization.get_and_cache_permissions_for_role(db, 9999)


class TestCacheCoherency:

    def test_invalidation_forces_reread(self, db, roles, authorization):
        role = roles["store_admin"]
        before = authorization.get_and_cache_permissions_for_role(db, role.id)

        role.permissions = [db.query(Permission).filter_by(name="users:delete").one()]
        db.commit()
        assert authorization.get_and_cache_permissions_for_role(db, role.id) == before

        authorization.invalidate_role_permissions_cache(role.id)
        assert authorization.get_and_cache_permissions_for_role(db, role.id) == ["users:delete"]

    def test_read_failure_degrades_to_database(self, db, roles, authorization, permission_cache):
        with mock.patch.object(permission_cache, "get", side_effect=redis.ConnectionError()):
            assert authorization.check_permission(db, roles["company_admin"].id, "users:read")

    def test_write_failure_is_swallowed(self, db, roles, authorization, permission_cache):
        with mock.patch.object(permission_cache, "set", side_effect=redis.TimeoutError()):
            names = authorization.get_and_cache_permissions_for_role(db, roles["company_admin"].id)
        assert "users:read" in names

    def test_invalidate_propagates_errors(self, authorization, permission_cache):
        with mock.patch.object(permission_cache, "invalidate", side_effect=redis.ConnectionError()):
            with pytest.raises(redis.ConnectionError):
                authorization.invalidate_role_permissions_cache(1)

    def test_invalidate_after_commit_logs_critical(self, authorization, permission_cache, caplog):
        with mock.patch.object(permission_cache, "invalidate", side_effect=redis.ConnectionError()):
            with caplog.at_level(logging.CRITICAL, logger="orgauth.authorization"):
                authorization.invalidate_after_commit(1)
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)


class TestOrganizationScope:

    def test_no_membership_denied_without_cache(
        self, db, make_user, tree, authorization, permission_cache,
    ):
        user = make_user("alice", "company_admin")
        with mock.patch.object(permission_cache, "get") as cache_get:
            assert authorization.check_permission_in_organization(
                db, user.id, tree["C1"].id, "users:read",
            ) is False
        cache_get.assert_not_called()

    def test_inactive_membership_denied(self, db, make_user, add_member, tree, authorization):
        user = make_user("alice")
        add_member(user, tree["S1"], "store_admin", is_active=False)
        assert not authorization.check_user_organization_access(db, user.id, tree["S1"].id)
        assert not authorization.check_permission_in_organization(
            db, user.id, tree["S1"].id, "users:read",
        )

    def test_membership_without_role_denied(self, db, make_user, add_member, tree, authorization):
        user = make_user("alice")
        add_member(user, tree["S1"])
        assert authorization.check_user_organization_access(db, user.id, tree["S1"].id)
        assert authorization.get_user_role_in_organization(db, user.id, tree["S1"].id) is None
        assert not authorization.check_permission_in_organization(
            db, user.id, tree["S1"].id, "users:read",
        )
        assert authorization.get_user_permissions_in_organization(db, user.id, tree["S1"].id) == []

    def test_decision_uses_membership_role_not_global_role(
        self, db, make_user, add_member, tree, roles, authorization,
    ):
        user = make_user("alice", "company_admin")
        add_member(user, tree["C1"], "company_admin")
        add_member(user, tree["S3"], "store_admin")

        assert authorization.check_permission_in_organization(
            db, user.id, tree["C1"].id, "organizations:create",
        )
        assert not authorization.check_permission_in_organization(
            db, user.id, tree["S3"].id, "organizations:create",
        )
        assert authorization.get_user_role_in_organization(
            db, user.id, tree["S3"].id,
        ) == roles["store_admin"].id

    def test_permissions_in_organization(self, db, make_user, add_member, tree, authorization):
        user = make_user("alice")
        add_member(user, tree["S1"], "store_admin")
        perms = authorization.get_user_permissions_in_organization(db, user.id, tree["S1"].id)
        assert "organizations:manage_members" in perms


class TestRoleApplicability:

    def test_tagged_type(self, db, roles, tree, authorization):
        store_admin = roles["store_admin"].id
        assert authorization.validate_role_accessible_in_organization(db, store_admin, tree["S1"].id)
        assert not authorization.validate_role_accessible_in_organization(
            db, store_admin, tree["C1"].id,
        )

    def test_explicit_type_skips_lookup(self, db, roles, authorization):
        assert authorization.validate_role_accessible_in_organization(
            db, roles["company_admin"].id, 9999, "company",
        )

    def test_super_role_universal(self, db, roles, tree, authorization):
        assert authorization.validate_role_accessible_in_organization(
            db, roles["super_admin"].id, tree["S1"].id,
        )

    def test_missing_role_or_organization(self, db, roles, authorization):
        with pytest.raises(ResourceNotFoundError):
            authorization.validate_role_accessible_in_organization(db, 9999, 1)
        with pytest.raises(ResourceNotFoundError):
            authorization.validate_role_accessible_in_organization(
                db, roles["store_admin"].id, 9999,
            )


class TestAccessSnapshot:

    def test_principal_without_role(self, db, make_user, authorization):
        snapshot = authorization.get_access_snapshot(db, make_user("nobody"))
        assert snapshot == {"role": None, "permissions": [], "organization_ids": []}

    def test_super_admin_unrestricted(self, db, super_admin, authorization):
        snapshot = authorization.get_access_snapshot(db, super_admin)
        assert snapshot["organization_ids"] is None
        assert snapshot["role"]["level"] == 100
        assert "permissions:manage" in snapshot["permissions"]

    def test_member_visibility(self, db, make_user, add_member, tree, authorization):
        user = make_user("alice", "store_admin")
        add_member(user, tree["C1"], "company_admin")
        snapshot = authorization.get_access_snapshot(db, user)
        assert snapshot["organization_ids"] == sorted(
            [tree["C1"].id, tree["S1"].id, tree["S2"].id]
        )
