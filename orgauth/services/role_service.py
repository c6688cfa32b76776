"""Role service: custom roles, their permissions and applicability tags."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from orgauth.core import constants as c
from orgauth.core.exceptions import (
    AuthorizationError, ResourceConflictError, ResourceNotFoundError, ValidationError,
)
from orgauth.models.organization import UserOrganization
from orgauth.models.role import Permission, Role, RoleOrganizationType
from orgauth.models.user import User
from orgauth.services.authorization_service import (
    AuthorizationService, authorization_service,
)
from orgauth.services.role_hierarchy import (
    AssignedRole, is_super_role, role_ref_for_user, validate_custom_role_level,
)

logger = logging.getLogger("orgauth.roles")


def _actor_role(actor: User) -> AssignedRole:
    ref = role_ref_for_user(actor)
    if not isinstance(ref, AssignedRole):
        raise AuthorizationError(c.MSG_CURRENT_USER_HAS_NO_ROLE)
    return ref


def _validate_organization_types(types: Sequence[str]) -> List[str]:
    unknown = [t for t in types if t not in c.ROLE_ORGANIZATION_TYPES]
    if unknown:
        raise ValidationError(
            f"Invalid organization type(s): {', '.join(sorted(set(unknown)))}"
        )
    return sorted(set(types))


def resolve_permissions(db: Session, names: Sequence[str]) -> List[Permission]:
    """Load permissions by name; every name must exist.

    Raises:
        ResourceNotFoundError: Listing the unknown names.
    """
    wanted = sorted(set(names))
    if not wanted:
        return []
    found = db.query(Permission).filter(Permission.name.in_(wanted)).all()
    missing = sorted(set(wanted) - {p.name for p in found})
    if missing:
        raise ResourceNotFoundError(f"Permission(s) not found: {', '.join(missing)}")
    return found


class RoleService:
    """Custom role lifecycle under strict hierarchical descent."""

    def __init__(self, authorization: AuthorizationService):
        self.authorization = authorization

    @staticmethod
    def get_role(db: Session, role_id: int) -> Role:
        role = (
            db.query(Role)
            .filter(Role.id == role_id, Role.deleted_at.is_(None))
            .first()
        )
        if not role:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        return role

    @staticmethod
    def _check_manageable(actor_role: AssignedRole, role: Role) -> None:
        if is_super_role(role):
            if not actor_role.is_super:
                raise AuthorizationError(c.MSG_ONLY_SUPER_ADMIN_CAN_MODIFY)
            return
        if role.level >= actor_role.level:
            raise AuthorizationError(
                f"Cannot manage role at level {role.level} from level {actor_role.level}"
            )

    @staticmethod
    def _ensure_name_free(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
        query = db.query(Role.id).filter(Role.name == name)
        if exclude_id is not None:
            query = query.filter(Role.id != exclude_id)
        if query.first() is not None:
            raise ResourceConflictError(f"Role '{name}' already exists")

    def create_role(
        self,
        db: Session,
        actor: User,
        name: str,
        level: int,
        description: Optional[str] = None,
        permission_names: Optional[Sequence[str]] = None,
        organization_types: Optional[Sequence[str]] = None,
        predefined_name: Optional[str] = None,
    ) -> Role:
        """Create a custom role strictly below the actor's level.

        Raises:
            AuthorizationError: Level at or above the actor's own level.
            ValidationError: Level outside the custom band or bad type tags.
            ResourceConflictError: Name already taken.
            ResourceNotFoundError: Unknown permission name.
        """
        actor_role = _actor_role(actor)
        validate_custom_role_level(level, actor_role.level)
        if predefined_name == c.SUPER_ADMIN_ROLE_NAME or name == c.SUPER_ADMIN_ROLE_NAME:
            raise AuthorizationError(c.MSG_ONLY_SUPER_ADMIN_CAN_ASSIGN)
        self._ensure_name_free(db, name)
        types = _validate_organization_types(
            organization_types if organization_types is not None else c.ROLE_ORGANIZATION_TYPES
        )
        permissions = resolve_permissions(db, permission_names or [])

        role = Role(
            name=name,
            description=description,
            level=level,
            predefined_name=predefined_name,
            is_system=False,
            is_active=True,
        )
        role.permissions = permissions
        role.organization_types = [RoleOrganizationType(organization_type=t) for t in types]
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info("User %s created role %s at level %s", actor.id, role.name, role.level)
        return role

    @staticmethod
    def list_roles(db: Session, actor: User) -> List[Role]:
        """Roles strictly below the actor's level; the super role is never listed."""
        actor_role = _actor_role(actor)
        roles = (
            db.query(Role)
            .filter(Role.deleted_at.is_(None), Role.level < actor_role.level)
            .order_by(Role.level.desc(), Role.name)
            .all()
        )
        return [r for r in roles if not is_super_role(r)]

    def update_role(
        self,
        db: Session,
        actor: User,
        role_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        level: Optional[int] = None,
        is_active: Optional[bool] = None,
        organization_types: Optional[Sequence[str]] = None,
    ) -> Role:
        """Update a role the actor outranks. System roles keep their name."""
        actor_role = _actor_role(actor)
        role = self.get_role(db, role_id)
        self._check_manageable(actor_role, role)

        if name is not None and name != role.name:
            if role.is_system:
                raise ValidationError("System roles cannot be renamed")
            self._ensure_name_free(db, name, exclude_id=role.id)
            role.name = name
        if level is not None and level != role.level:
            if is_super_role(role):
                raise ValidationError("The super administrator role level cannot change")
            validate_custom_role_level(level, actor_role.level)
            role.level = level
        if description is not None:
            role.description = description
        if is_active is not None:
            role.is_active = is_active
        if organization_types is not None:
            types = _validate_organization_types(organization_types)
            role.organization_types = [RoleOrganizationType(organization_type=t) for t in types]

        db.commit()
        db.refresh(role)
        return role

    def delete_role(self, db: Session, actor: User, role_id: int) -> None:
        """Soft-delete a custom role that nobody holds.

        Raises:
            ValidationError: System role.
            ResourceConflictError: Still assigned globally or in a membership.
        """
        actor_role = _actor_role(actor)
        role = self.get_role(db, role_id)
        if role.is_system:
            raise ValidationError("System roles cannot be deleted")
        self._check_manageable(actor_role, role)

        holders = (
            db.query(User.id)
            .filter(User.role_id == role.id, User.deleted_at.is_(None))
            .count()
        )
        memberships = (
            db.query(UserOrganization.id)
            .filter(UserOrganization.role_id == role.id, UserOrganization.is_active.is_(True))
            .count()
        )
        if holders or memberships:
            raise ResourceConflictError(
                f"Role '{role.name}' is assigned to {holders} user(s) and "
                f"{memberships} membership(s)"
            )

        role.permissions = []
        role.is_active = False
        role.deleted_at = datetime.now(timezone.utc)
        db.commit()
        self.authorization.invalidate_after_commit(role.id)
        logger.info("User %s deleted role %s", actor.id, role.id)

    def update_role_permissions(
        self, db: Session, actor: User, role_id: int, permission_names: Sequence[str],
    ) -> Role:
        """Replace a role's permission set in one transaction, then invalidate its cache.

        Raises:
            ResourceNotFoundError: Unknown role or permission name; nothing changes.
        """
        actor_role = _actor_role(actor)
        role = self.get_role(db, role_id)
        self._check_manageable(actor_role, role)
        permissions = resolve_permissions(db, permission_names)

        role.permissions = permissions
        db.commit()
        self.authorization.invalidate_after_commit(role.id)
        db.refresh(role)
        logger.info(
            "User %s set %d permission(s) on role %s", actor.id, len(permissions), role.id,
        )
        return role

    @staticmethod
    def get_roles_for_organization_type(
        db: Session, actor: User, organization_type: str,
    ) -> List[Role]:
        """Assignable roles tagged for an organization type, below the actor's level."""
        actor_role = _actor_role(actor)
        _validate_organization_types([organization_type])
        roles = (
            db.query(Role)
            .join(RoleOrganizationType, RoleOrganizationType.role_id == Role.id)
            .filter(
                RoleOrganizationType.organization_type == organization_type,
                Role.deleted_at.is_(None),
                Role.is_active.is_(True),
                Role.level < actor_role.level,
            )
            .order_by(Role.level.desc(), Role.name)
            .all()
        )
        return [r for r in roles if not is_super_role(r)]

    @staticmethod
    def get_predefined_role_options(actor_level: int) -> List[Dict[str, Any]]:
        """Templates the actor may instantiate.

        Principals without a role are offered the company tier and below.
        """
        if actor_level <= c.ROLE_LEVEL_NONE:
            ceiling = c.ROLE_LEVEL_COMPANY_ADMIN
            return [dict(o) for o in c.PREDEFINED_ROLE_OPTIONS if o["level"] <= ceiling]
        return [dict(o) for o in c.PREDEFINED_ROLE_OPTIONS if o["level"] < actor_level]


class PermissionService:
    """Permission catalogue management."""

    def __init__(self, authorization: AuthorizationService):
        self.authorization = authorization

    @staticmethod
    def list_permissions(db: Session) -> List[Permission]:
        return db.query(Permission).order_by(Permission.name).all()

    @staticmethod
    def get_permission(db: Session, permission_id: int) -> Permission:
        permission = db.query(Permission).filter(Permission.id == permission_id).first()
        if not permission:
            raise ResourceNotFoundError(f"Permission {permission_id} not found")
        return permission

    @staticmethod
    def create_permission(db: Session, name: str, description: Optional[str] = None) -> Permission:
        if db.query(Permission.id).filter(Permission.name == name).first() is not None:
            raise ResourceConflictError(f"Permission '{name}' already exists")
        permission = Permission(name=name, description=description)
        db.add(permission)
        db.commit()
        db.refresh(permission)
        return permission

    @staticmethod
    def _referencing_role_ids(db: Session, permission: Permission) -> List[int]:
        rows = (
            db.query(Role.id)
            .filter(Role.permissions.any(Permission.id == permission.id))
            .all()
        )
        return [r[0] for r in rows]

    def update_permission(
        self,
        db: Session,
        permission_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Permission:
        """Update a permission; a rename invalidates every role that carries it."""
        permission = self.get_permission(db, permission_id)
        renamed = name is not None and name != permission.name
        if renamed:
            taken = (
                db.query(Permission.id)
                .filter(Permission.name == name, Permission.id != permission.id)
                .first()
            )
            if taken is not None:
                raise ResourceConflictError(f"Permission '{name}' already exists")
            permission.name = name
        if description is not None:
            permission.description = description
        db.commit()

        if renamed:
            for role_id in self._referencing_role_ids(db, permission):
                self.authorization.invalidate_after_commit(role_id)
        db.refresh(permission)
        return permission

    def delete_permission(self, db: Session, permission_id: int) -> None:
        """Delete a permission no role references.

        Raises:
            ResourceConflictError: Still attached to at least one role.
        """
        permission = self.get_permission(db, permission_id)
        in_use = self._referencing_role_ids(db, permission)
        if in_use:
            raise ResourceConflictError(
                f"Permission '{permission.name}' is used by {len(in_use)} role(s)"
            )
        db.delete(permission)
        db.commit()


role_service = RoleService(authorization_service)
permission_service = PermissionService(authorization_service)
