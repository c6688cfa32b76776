"""Pytest configuration and fixtures for orgauth tests."""

import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")

import itertools
from typing import Dict, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import orgauth.models  # noqa: F401
from orgauth.core.security import hash_password
from orgauth.db.base import Base
from orgauth.db.seeds.seed_rbac import seed_rbac
from orgauth.models.organization import Organization, UserOrganization
from orgauth.models.role import Role
from orgauth.models.user import User
from orgauth.services.auth_service import AuthService
from orgauth.services.authorization_service import AuthorizationService
from orgauth.services.cache_service import CacheService
from orgauth.services.permission_cache import PermissionCache
from orgauth.services.session_store import SessionStore
from orgauth.services.token_service import TokenService

PASSWORD = "correct-horse"


class FakePipeline:
    """Queues commands and applies them on execute, like a MULTI block."""

    def __init__(self, redis):
        self._redis = redis
        self._calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._calls.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        calls, self._calls = self._calls, []
        return [getattr(self._redis, name)(*args, **kwargs) for name, args, kwargs in calls]


class FakeRedis:
    """In-memory stand-in for the subset of redis.Redis the adapters use."""

    def __init__(self):
        self.data: Dict[str, object] = {}
        self.ttls: Dict[str, Optional[int]] = {}

    def ping(self):
        return True

    def get(self, name):
        value = self.data.get(name)
        return value if isinstance(value, str) else None

    def set(self, name, value, ex=None):
        self.data[name] = value
        self.ttls[name] = ex
        return True

    def delete(self, *names):
        removed = 0
        for name in names:
            if name in self.data:
                del self.data[name]
                self.ttls.pop(name, None)
                removed += 1
        return removed

    def exists(self, *names):
        return sum(1 for name in names if name in self.data)

    def expire(self, name, seconds):
        if name not in self.data:
            return False
        self.ttls[name] = seconds
        return True

    def sadd(self, name, *values):
        members = self.data.setdefault(name, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    def srem(self, name, *values):
        members = self.data.get(name)
        if not isinstance(members, set):
            return 0
        removed = len(members & set(values))
        members.difference_update(values)
        if not members:
            del self.data[name]
        return removed

    def smembers(self, name):
        members = self.data.get(name)
        return set(members) if isinstance(members, set) else set()

    def scard(self, name):
        return len(self.smembers(name))

    def pipeline(self, transaction=True):
        return FakePipeline(self)


# ── Stores ──────────────────────────────────────────────────────

@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheService(client=fake_redis)


@pytest.fixture
def permission_cache(cache):
    return PermissionCache(cache, ttl_seconds=900)


@pytest.fixture
def session_store(cache):
    return SessionStore(cache, ttl_seconds=7 * 24 * 3600)


@pytest.fixture
def tokens():
    return TokenService(secret="unit-test-secret")


@pytest.fixture
def authorization(permission_cache):
    return AuthorizationService(permission_cache)


@pytest.fixture
def auth(session_store, authorization, tokens):
    return AuthService(session_store, authorization, tokens)


# ── Database ────────────────────────────────────────────────────

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    seed_rbac(session)
    yield session
    session.close()


@pytest.fixture
def roles(db) -> Dict[str, Role]:
    return {r.name: r for r in db.query(Role).all()}


_counter = itertools.count(1)


@pytest.fixture
def make_user(db, roles):
    def _make(username, role_name=None, password=PASSWORD, is_active=True, **fields):
        user = User(
            username=username,
            email=fields.pop("email", f"{username}@example.com"),
            hashed_password=hash_password(password) if password else None,
            role_id=roles[role_name].id if role_name else None,
            is_active=is_active,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_org(db):
    def _make(name, organization_type, parent=None):
        org = Organization(
            name=name,
            code=f"T{next(_counter):07d}",
            organization_type=organization_type,
            parent_id=parent.id if parent is not None else None,
        )
        db.add(org)
        db.commit()
        db.refresh(org)
        return org
    return _make


@pytest.fixture
def add_member(db, roles):
    def _add(user, org, role_name=None, is_active=True):
        membership = UserOrganization(
            user_id=user.id,
            organization_id=org.id,
            role_id=roles[role_name].id if role_name else None,
            is_active=is_active,
        )
        db.add(membership)
        db.commit()
        db.refresh(membership)
        return membership
    return _add


@pytest.fixture
def super_admin(make_user):
    return make_user("root", "super_admin")


@pytest.fixture
def tree(make_org):
    """holding H with companies C1, C2; C1 has stores S1, S2; C2 has S3."""
    h = make_org("Holding", "holding")
    c1 = make_org("Company One", "company", h)
    c2 = make_org("Company Two", "company", h)
    s1 = make_org("Store One", "store", c1)
    s2 = make_org("Store Two", "store", c1)
    s3 = make_org("Store Three", "store", c2)
    return {"H": h, "C1": c1, "C2": c2, "S1": s1, "S2": s2, "S3": s3}
