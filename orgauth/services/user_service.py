"""User service: principals, global roles and organization memberships."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from orgauth.core import constants as c
from orgauth.core.exceptions import (
    AccessControlError, AuthorizationError, InternalError, ResourceConflictError,
    ResourceNotFoundError, ValidationError,
)
from orgauth.core.security import hash_password
from orgauth.models.organization import Organization, UserOrganization
from orgauth.models.role import Role
from orgauth.models.user import User
from orgauth.services.auth_service import AuthService, auth_service
from orgauth.services.authorization_service import (
    AuthorizationService, authorization_service,
)
from orgauth.services.history_service import history_service, page_bounds
from orgauth.services.organization_hierarchy import get_accessible_organization_ids
from orgauth.services.role_hierarchy import (
    AssignedRole, RoleRef, role_ref_for_user, validate_role_change,
)

logger = logging.getLogger("orgauth.users")

# Distinguishes "leave the role alone" from "remove the role" (None).
UNSET: Any = object()


def _role_name(role: Optional[Role]) -> Optional[str]:
    return role.name if role is not None else None


class UserService:
    """Principal lifecycle under the role hierarchy rules."""

    def __init__(self, authorization: AuthorizationService, auth: AuthService):
        self.authorization = authorization
        self.auth = auth

    # ── Lookups ─────────────────────────────────────────────────

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = (
            db.query(User)
            .filter(User.id == user_id, User.deleted_at.is_(None))
            .first()
        )
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def _get_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id, Role.deleted_at.is_(None)).first()
        if not role:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        return role

    @staticmethod
    def _get_organization(db: Session, organization_id: int) -> Organization:
        org = (
            db.query(Organization)
            .filter(Organization.id == organization_id, Organization.deleted_at.is_(None))
            .first()
        )
        if not org:
            raise ResourceNotFoundError(f"Organization {organization_id} not found")
        return org

    @staticmethod
    def _ensure_unique(
        db: Session,
        username: Optional[str] = None,
        email: Optional[str] = None,
        google_id: Optional[str] = None,
        exclude_id: Optional[int] = None,
    ) -> None:
        for column, value, label in (
            (User.username, username, "username"),
            (User.email, email, "email"),
            (User.google_id, google_id, "external identity"),
        ):
            if value is None:
                continue
            query = db.query(User.id).filter(column == value)
            if exclude_id is not None:
                query = query.filter(User.id != exclude_id)
            if query.first() is not None:
                raise ResourceConflictError(f"User with this {label} already exists")

    # ── Authority helpers ───────────────────────────────────────

    @staticmethod
    def _actor_ref(actor: User) -> AssignedRole:
        ref = role_ref_for_user(actor)
        if not isinstance(ref, AssignedRole):
            raise AuthorizationError(c.MSG_CURRENT_USER_HAS_NO_ROLE)
        return ref

    def _check_outranks(self, actor: User, target: User) -> None:
        """The actor may act on another principal only from a strictly higher level."""
        if actor.id == target.id:
            raise AuthorizationError("Users cannot perform this action on themselves")
        actor_ref = self._actor_ref(actor)
        if role_ref_for_user(target).level >= actor_ref.level:
            raise AuthorizationError(c.MSG_INSUFFICIENT_AUTHORITY)

    @staticmethod
    def _ensure_organization_visible(db: Session, actor: User, organization_id: int) -> None:
        visible = get_accessible_organization_ids(
            db, actor.id, role_ref_for_user(actor).level,
        )
        if visible is not None and organization_id not in visible:
            raise AuthorizationError(c.MSG_ORGANIZATION_ACCESS_DENIED)

    def _revoke_sessions(self, user_id: int) -> None:
        try:
            self.auth.revoke_all_sessions(user_id)
        except InternalError:
            logger.error("Could not revoke sessions of user %s", user_id, exc_info=True)

    # ── Principals ──────────────────────────────────────────────

    def register(
        self,
        db: Session,
        username: str,
        password: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> User:
        """Self-service sign-up: a local principal without a role."""
        return self._create(db, username, password, email, full_name, None)

    def create_user(
        self,
        db: Session,
        actor: User,
        username: str,
        password: Optional[str] = None,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        role_id: Optional[int] = None,
        google_id: Optional[str] = None,
    ) -> User:
        """Create a principal on behalf of ``actor``, optionally with a role.

        Local principals need a password; external ones a google id, and
        never both.
        """
        role = None
        if role_id is not None:
            role = self._get_role(db, role_id)
            validate_role_change(db, actor, None, role)
        return self._create(db, username, password, email, full_name, role, google_id)

    def _create(
        self,
        db: Session,
        username: str,
        password: Optional[str],
        email: Optional[str],
        full_name: Optional[str],
        role: Optional[Role],
        google_id: Optional[str] = None,
    ) -> User:
        if google_id and password:
            raise ValidationError("A user is either local or external, not both")
        if not google_id and not password:
            raise ValidationError("Password is required for local users")
        self._ensure_unique(db, username=username, email=email, google_id=google_id)

        user = User(
            username=username,
            email=email,
            full_name=full_name,
            hashed_password=hash_password(password) if password else None,
            google_id=google_id,
            auth_provider=c.AUTH_PROVIDER_GOOGLE if google_id else c.AUTH_PROVIDER_LOCAL,
            role_id=role.id if role is not None else None,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Created user %s (%s)", user.id, user.auth_provider)
        return user

    def list_users(
        self,
        db: Session,
        actor: User,
        page: int = 1,
        page_size: Optional[int] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Principals the actor may manage.

        Only levels strictly below the actor's are listed, never the actor,
        and below platform visibility only members of accessible organizations.
        """
        page, page_size = page_bounds(page, page_size)
        actor_ref: RoleRef = role_ref_for_user(actor)
        empty = {"users": [], "total": 0, "page": page, "page_size": page_size}
        if actor_ref.level <= c.ROLE_LEVEL_NONE:
            return empty

        query = (
            db.query(User)
            .outerjoin(Role, User.role_id == Role.id)
            .filter(
                User.deleted_at.is_(None),
                User.id != actor.id,
                or_(User.role_id.is_(None), Role.level < actor_ref.level),
            )
        )
        visible = get_accessible_organization_ids(db, actor.id, actor_ref.level)
        if visible is not None:
            if not visible:
                return empty
            member_ids = (
                db.query(UserOrganization.user_id)
                .filter(
                    UserOrganization.organization_id.in_(visible),
                    UserOrganization.is_active.is_(True),
                )
            )
            query = query.filter(User.id.in_(member_ids))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                User.username.ilike(pattern),
                User.email.ilike(pattern),
                User.full_name.ilike(pattern),
            ))

        total = query.count()
        users = (
            query.order_by(User.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page, "page_size": page_size}

    def update_user(
        self,
        db: Session,
        actor: User,
        user_id: int,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        avatar_url: Optional[str] = None,
        is_active: Optional[bool] = None,
        role_id: Any = UNSET,
    ) -> User:
        """Update profile fields, status and the global role.

        Passing ``role_id=None`` removes the role, which also deactivates
        every membership of the principal. A role change, role removal or
        deactivation revokes all of the principal's sessions.
        """
        target = self.get_user(db, user_id)
        if target.id != actor.id:
            self._check_outranks(actor, target)

        if is_active is not None and is_active != target.is_active and target.id == actor.id:
            raise AuthorizationError("Users cannot change their own status")

        role_changed = False
        deactivated_memberships: List[UserOrganization] = []
        if role_id is not UNSET and role_id != target.role_id:
            new_role = self._get_role(db, role_id) if role_id is not None else None
            validate_role_change(db, actor, target, new_role)
            target.role_id = role_id
            role_changed = True
            if new_role is None:
                for membership in target.memberships:
                    if membership.is_active:
                        membership.is_active = False
                        deactivated_memberships.append(membership)

        status_changed = False
        if is_active is not None and is_active != target.is_active:
            target.is_active = is_active
            status_changed = True

        if email is not None and email != target.email:
            self._ensure_unique(db, email=email, exclude_id=target.id)
            target.email = email
        if full_name is not None:
            target.full_name = full_name
        if avatar_url is not None:
            target.avatar_url = avatar_url

        db.commit()
        db.refresh(target)

        for membership in deactivated_memberships:
            history_service.record(
                db, target.id, membership.organization_id, c.HISTORY_STATUS_CHANGED,
                action_by=actor.id, previous_status=True, new_status=False,
                reason="Global role removed",
            )
        if role_changed or (status_changed and not target.is_active):
            self._revoke_sessions(target.id)
        return target

    def delete_user(self, db: Session, actor: User, user_id: int) -> None:
        """Soft-delete a principal the actor outranks and end its sessions."""
        target = self.get_user(db, user_id)
        self._check_outranks(actor, target)

        target.deleted_at = datetime.now(timezone.utc)
        target.is_active = False
        deactivated = [m for m in target.memberships if m.is_active]
        for membership in deactivated:
            membership.is_active = False
        db.commit()

        for membership in deactivated:
            history_service.record(
                db, target.id, membership.organization_id, c.HISTORY_STATUS_CHANGED,
                action_by=actor.id, previous_status=True, new_status=False,
                reason="User deleted",
            )
        self._revoke_sessions(target.id)
        logger.info("User %s deleted user %s", actor.id, target.id)

    # ── Memberships ─────────────────────────────────────────────

    def _membership(
        self, db: Session, user_id: int, organization_id: int,
    ) -> Optional[UserOrganization]:
        return (
            db.query(UserOrganization)
            .filter(
                UserOrganization.user_id == user_id,
                UserOrganization.organization_id == organization_id,
            )
            .first()
        )

    def _validate_membership_role(
        self, db: Session, actor: User, role_id: int, org: Organization,
    ) -> Role:
        role = self._get_role(db, role_id)
        if role.level >= self._actor_ref(actor).level:
            raise AuthorizationError(c.MSG_INSUFFICIENT_AUTHORITY)
        if not self.authorization.validate_role_accessible_in_organization(
            db, role.id, org.id, org.organization_type,
        ):
            raise ValidationError(
                f"Role '{role.name}' cannot be used in a {org.organization_type} organization"
            )
        return role

    def assign_user_to_organization(
        self,
        db: Session,
        actor: User,
        user_id: int,
        organization_id: int,
        role_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> UserOrganization:
        """Add (or reactivate) a membership with an organization-scoped role.

        Raises:
            ResourceConflictError: The principal is already an active member.
        """
        target = self.get_user(db, user_id)
        self._check_outranks(actor, target)
        org = self._get_organization(db, organization_id)
        self._ensure_organization_visible(db, actor, org.id)
        role = self._validate_membership_role(db, actor, role_id, org) if role_id is not None else None

        membership = self._membership(db, target.id, org.id)
        if membership is not None and membership.is_active:
            raise ResourceConflictError("User is already a member of this organization")
        if membership is None:
            membership = UserOrganization(user_id=target.id, organization_id=org.id)
            db.add(membership)
        membership.role_id = role.id if role is not None else None
        membership.is_active = True
        membership.joined_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(membership)

        history_service.record(
            db, target.id, org.id, c.HISTORY_ASSIGNED, action_by=actor.id,
            new_role=_role_name(role), new_status=True, reason=reason,
        )
        return membership

    def update_user_organization(
        self,
        db: Session,
        actor: User,
        user_id: int,
        organization_id: int,
        role_id: Any = UNSET,
        is_active: Optional[bool] = None,
        reason: Optional[str] = None,
    ) -> UserOrganization:
        """Change the role or status of an existing membership."""
        target = self.get_user(db, user_id)
        self._check_outranks(actor, target)
        org = self._get_organization(db, organization_id)
        self._ensure_organization_visible(db, actor, org.id)
        membership = self._membership(db, target.id, org.id)
        if membership is None:
            raise ResourceNotFoundError("Membership not found")

        previous_role = _role_name(membership.role)
        previous_status = membership.is_active
        new_role = membership.role
        if role_id is not UNSET and role_id != membership.role_id:
            new_role = (
                self._validate_membership_role(db, actor, role_id, org)
                if role_id is not None else None
            )
            membership.role_id = role_id
        if is_active is not None:
            membership.is_active = is_active
        db.commit()
        db.refresh(membership)

        if _role_name(new_role) != previous_role:
            history_service.record(
                db, target.id, org.id, c.HISTORY_ROLE_UPDATED, action_by=actor.id,
                previous_role=previous_role, new_role=_role_name(new_role), reason=reason,
            )
        if membership.is_active != previous_status:
            history_service.record(
                db, target.id, org.id, c.HISTORY_STATUS_CHANGED, action_by=actor.id,
                previous_status=previous_status, new_status=membership.is_active, reason=reason,
            )
        return membership

    def remove_user_from_organization(
        self,
        db: Session,
        actor: User,
        user_id: int,
        organization_id: int,
        reason: Optional[str] = None,
    ) -> None:
        """Deactivate an active membership."""
        target = self.get_user(db, user_id)
        self._check_outranks(actor, target)
        self._ensure_organization_visible(db, actor, organization_id)
        membership = self._membership(db, target.id, organization_id)
        if membership is None or not membership.is_active:
            raise ResourceNotFoundError("Active membership not found")

        previous_role = _role_name(membership.role)
        membership.is_active = False
        db.commit()
        history_service.record(
            db, target.id, organization_id, c.HISTORY_REMOVED, action_by=actor.id,
            previous_role=previous_role, previous_status=True, new_status=False, reason=reason,
        )

    def bulk_assign_users_to_organization(
        self,
        db: Session,
        actor: User,
        user_ids: Sequence[int],
        organization_id: int,
        role_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Assign several principals; each failure is reported per user."""
        assigned: List[int] = []
        failed: List[Dict[str, Any]] = []
        for user_id in dict.fromkeys(user_ids):
            try:
                self.assign_user_to_organization(
                    db, actor, user_id, organization_id, role_id, reason,
                )
            except AccessControlError as e:
                db.rollback()
                failed.append({"user_id": user_id, "error": e.message})
            else:
                assigned.append(user_id)
        return {"assigned": assigned, "failed": failed}

    @staticmethod
    def list_user_organizations(
        db: Session, user_id: int, include_inactive: bool = False,
    ) -> List[UserOrganization]:
        query = (
            db.query(UserOrganization)
            .join(Organization, UserOrganization.organization_id == Organization.id)
            .filter(UserOrganization.user_id == user_id, Organization.deleted_at.is_(None))
        )
        if not include_inactive:
            query = query.filter(UserOrganization.is_active.is_(True))
        return query.order_by(Organization.name).all()

    @staticmethod
    def list_organization_members(
        db: Session, organization_id: int, include_inactive: bool = False,
    ) -> List[UserOrganization]:
        query = (
            db.query(UserOrganization)
            .join(User, UserOrganization.user_id == User.id)
            .filter(UserOrganization.organization_id == organization_id, User.deleted_at.is_(None))
        )
        if not include_inactive:
            query = query.filter(UserOrganization.is_active.is_(True))
        return query.order_by(User.username).all()

    @staticmethod
    def get_user_history(
        db: Session, user_id: int, page: int = 1, page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        return history_service.query(db, user_id=user_id, page=page, page_size=page_size)

    @staticmethod
    def get_organization_history(
        db: Session, organization_id: int, page: int = 1, page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        return history_service.query(
            db, organization_id=organization_id, page=page, page_size=page_size,
        )


user_service = UserService(authorization_service, auth_service)
