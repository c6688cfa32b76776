"""Authorization engine: permission decisions, per-organization isolation and caching."""

import logging
from typing import Any, Dict, List, Optional

import redis
from sqlalchemy.orm import Session

from orgauth.core.exceptions import ResourceNotFoundError
from orgauth.models.organization import Organization, UserOrganization
from orgauth.models.role import Permission, Role, role_permissions
from orgauth.models.user import User
from orgauth.services.organization_hierarchy import get_accessible_organization_ids
from orgauth.services.permission_cache import PermissionCache, permission_cache
from orgauth.services.role_hierarchy import NoRole, is_super_role, role_ref_for_user

logger = logging.getLogger("orgauth.authorization")


class AuthorizationService:
    """Answers "may principal P, optionally inside organization O, do A?".

    Every method receives the request-scoped session explicitly. When an
    organization is given, decisions are keyed off the membership's role,
    never the principal's global role.
    """

    def __init__(self, cache: PermissionCache):
        self.cache = cache

    # ── Global role ─────────────────────────────────────────────

    @staticmethod
    def _get_role(db: Session, role_id: int) -> Optional[Role]:
        return (
            db.query(Role)
            .filter(Role.id == role_id, Role.deleted_at.is_(None))
            .first()
        )

    def check_permission(self, db: Session, role_id: int, permission_name: str) -> bool:
        """True if the role grants the permission.

        The super role is allowed unconditionally, without reading the
        permission cache or the permission table.
        """
        role = self._get_role(db, role_id)
        if role is None:
            return False
        if is_super_role(role):
            return True
        return permission_name in self._permissions_for(db, role)

    def get_and_cache_permissions_for_role(self, db: Session, role_id: int) -> List[str]:
        """Permission names of a role, sorted.

        Raises:
            ResourceNotFoundError: If the role does not exist.
        """
        role = self._get_role(db, role_id)
        if role is None:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        if is_super_role(role):
            return self._all_permission_names(db)
        return self._permissions_for(db, role)

    @staticmethod
    def _all_permission_names(db: Session) -> List[str]:
        rows = db.query(Permission.name).order_by(Permission.name).all()
        return [r[0] for r in rows]

    @staticmethod
    def _load_role_permissions(db: Session, role_id: int) -> List[str]:
        rows = (
            db.query(Permission.name)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .filter(role_permissions.c.role_id == role_id)
            .order_by(Permission.name)
            .all()
        )
        return [r[0] for r in rows]

    def _permissions_for(self, db: Session, role: Role) -> List[str]:
        try:
            cached = self.cache.get(role.id)
        except redis.RedisError:
            logger.warning("Permission cache read failed for role %s", role.id, exc_info=True)
            cached = None
        if cached is not None:
            logger.debug("Permission cache hit for role %s", role.id)
            return cached

        logger.debug("Permission cache miss for role %s", role.id)
        names = self._load_role_permissions(db, role.id)
        try:
            self.cache.set(role.id, names)
        except redis.RedisError:
            logger.warning("Permission cache write failed for role %s", role.id, exc_info=True)
        return names

    def invalidate_role_permissions_cache(self, role_id: int) -> None:
        """Drop the cached permission set. Cache errors propagate."""
        self.cache.invalidate(role_id)

    def invalidate_after_commit(self, role_id: int) -> None:
        """Invalidate after a committed write; failures are logged, not raised.

        The database stays the source of truth, but a stale entry keeps
        answering until its TTL expires, hence CRITICAL.
        """
        try:
            self.invalidate_role_permissions_cache(role_id)
        except redis.RedisError:
            logger.critical(
                "Failed to invalidate permission cache for role %s; stale until TTL expiry",
                role_id,
                exc_info=True,
            )

    # ── Organization scope ──────────────────────────────────────

    @staticmethod
    def _active_membership(
        db: Session, user_id: int, organization_id: int,
    ) -> Optional[UserOrganization]:
        return (
            db.query(UserOrganization)
            .join(Organization, UserOrganization.organization_id == Organization.id)
            .filter(
                UserOrganization.user_id == user_id,
                UserOrganization.organization_id == organization_id,
                UserOrganization.is_active.is_(True),
                Organization.deleted_at.is_(None),
            )
            .first()
        )

    def check_user_organization_access(
        self, db: Session, user_id: int, organization_id: int,
    ) -> bool:
        return self._active_membership(db, user_id, organization_id) is not None

    def get_user_role_in_organization(
        self, db: Session, user_id: int, organization_id: int,
    ) -> Optional[int]:
        """Role id bound to the active membership, or None."""
        membership = self._active_membership(db, user_id, organization_id)
        return membership.role_id if membership else None

    def check_permission_in_organization(
        self, db: Session, user_id: int, organization_id: int, permission_name: str,
    ) -> bool:
        """Decide using the membership's role only.

        No active membership, or a membership without a role, is a denial
        that never touches the permission cache.
        """
        role_id = self.get_user_role_in_organization(db, user_id, organization_id)
        if role_id is None:
            return False
        return self.check_permission(db, role_id, permission_name)

    def get_user_permissions_in_organization(
        self, db: Session, user_id: int, organization_id: int,
    ) -> List[str]:
        role_id = self.get_user_role_in_organization(db, user_id, organization_id)
        if role_id is None:
            return []
        return self.get_and_cache_permissions_for_role(db, role_id)

    def validate_role_accessible_in_organization(
        self,
        db: Session,
        role_id: int,
        organization_id: int,
        organization_type: Optional[str] = None,
    ) -> bool:
        """True if the role is tagged for the organization's type (super: always).

        Raises:
            ResourceNotFoundError: If the role or the organization does not exist.
        """
        role = self._get_role(db, role_id)
        if role is None:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        if is_super_role(role):
            return True
        if organization_type is None:
            org = (
                db.query(Organization)
                .filter(Organization.id == organization_id, Organization.deleted_at.is_(None))
                .first()
            )
            if org is None:
                raise ResourceNotFoundError(f"Organization {organization_id} not found")
            organization_type = org.organization_type
        return organization_type in role.organization_type_names

    # ── Snapshot ────────────────────────────────────────────────

    def get_access_snapshot(self, db: Session, user: User) -> Dict[str, Any]:
        """Global role, permissions and visible organizations for a principal.

        ``organization_ids`` is None when visibility is unrestricted.
        """
        ref = role_ref_for_user(user)
        if isinstance(ref, NoRole):
            permissions: List[str] = []
            role = None
        else:
            permissions = self.get_and_cache_permissions_for_role(db, ref.id)
            role = {"id": ref.id, "name": ref.name, "level": ref.level}
        visible = get_accessible_organization_ids(db, user.id, ref.level)
        return {
            "role": role,
            "permissions": permissions,
            "organization_ids": sorted(visible) if visible is not None else None,
        }


authorization_service = AuthorizationService(permission_cache)
