"""Tests for the Redis-backed session store and permission cache."""

from unittest import mock

from orgauth.services.permission_cache import role_permissions_key
from orgauth.services.session_store import principal_index_key


class TestSessionStore:

    def test_store_and_lookup(self, session_store, fake_redis):
        session_store.store("tok-a", 7)
        assert session_store.get_principal("tok-a") == "7"
        assert fake_redis.ttls["tok-a"] == 7 * 24 * 3600
        assert fake_redis.smembers(principal_index_key(7)) == {"tok-a"}
        assert session_store.count_for_principal(7) == 1

    def test_unknown_token(self, session_store):
        assert session_store.get_principal("missing") is None

    def test_consume_is_single_use(self, session_store, fake_redis):
        session_store.store("tok-a", 7)
        assert session_store.consume("tok-a", 7) is True
        assert session_store.consume("tok-a", 7) is False
        assert session_store.get_principal("tok-a") is None
        assert session_store.count_for_principal(7) == 0

    def test_revoke(self, session_store):
        session_store.store("tok-a", 7)
        assert session_store.revoke("tok-a") is True
        assert session_store.revoke("tok-a") is False
        assert session_store.count_for_principal(7) == 0

    def test_revoke_all_only_touches_one_principal(self, session_store):
        session_store.store("tok-a", 7)
        session_store.store("tok-b", 7)
        session_store.store("tok-c", 8)

        assert session_store.revoke_all_for_principal(7) == 2
        assert session_store.get_principal("tok-a") is None
        assert session_store.get_principal("tok-b") is None
        assert session_store.get_principal("tok-c") == "8"
        assert session_store.count_for_principal(7) == 0

    def test_revoke_all_without_sessions(self, session_store):
        assert session_store.revoke_all_for_principal(42) == 0

    def test_login_during_revoke_all_stays_indexed(self, session_store, fake_redis):
        session_store.store("tok-a", 7)
        read_index = fake_redis.smembers
        logged_in = []

        def smembers_then_login(name):
            members = read_index(name)
            if not logged_in:
                logged_in.append("tok-new")
                session_store.store("tok-new", 7)
            return members

        with mock.patch.object(fake_redis, "smembers", side_effect=smembers_then_login):
            assert session_store.revoke_all_for_principal(7) == 1

        assert session_store.get_principal("tok-new") == "7"
        assert fake_redis.smembers(principal_index_key(7)) == {"tok-new"}
        assert session_store.revoke_all_for_principal(7) == 1
        assert session_store.get_principal("tok-new") is None

    def test_expired_sessions_pruned_from_index(self, session_store, fake_redis):
        session_store.store("tok-a", 7)
        session_store.store("tok-b", 7)
        # Simulate passive TTL expiry of one session key.
        fake_redis.delete("tok-a")
        assert session_store.count_for_principal(7) == 1

        session_store.store("tok-c", 7)
        assert fake_redis.smembers(principal_index_key(7)) == {"tok-b", "tok-c"}


class TestPermissionCache:

    def test_key_format(self):
        assert role_permissions_key(5) == "permissions:role:5"

    def test_miss(self, permission_cache):
        assert permission_cache.get(5) is None

    def test_set_get_with_ttl(self, permission_cache, fake_redis):
        permission_cache.set(5, ["a:read", "b:read"])
        assert permission_cache.get(5) == ["a:read", "b:read"]
        assert fake_redis.ttls["permissions:role:5"] == 900

    def test_malformed_entry_is_a_miss(self, permission_cache, fake_redis):
        fake_redis.set("permissions:role:5", "{not json")
        assert permission_cache.get(5) is None
        fake_redis.set("permissions:role:5", '{"a": 1}')
        assert permission_cache.get(5) is None

    def test_invalidate(self, permission_cache):
        permission_cache.set(5, ["a:read"])
        permission_cache.invalidate(5)
        assert permission_cache.get(5) is None
