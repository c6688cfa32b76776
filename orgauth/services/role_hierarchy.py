"""Role hierarchy rules: trust levels, the super role and assignment authority."""

from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from orgauth.core import constants as c
from orgauth.core.config import settings
from orgauth.core.exceptions import (
    AuthorizationError, ResourceConflictError, ValidationError,
)
from orgauth.models.role import Role, RoleOrganizationType
from orgauth.models.user import User


@dataclass(frozen=True)
class NoRole:
    """A principal without a global role."""
    level: int = c.ROLE_LEVEL_NONE
    name: Optional[str] = None
    is_super: bool = False


@dataclass(frozen=True)
class AssignedRole:
    id: int
    level: int
    name: str
    predefined_name: Optional[str] = None

    @property
    def is_super(self) -> bool:
        return _is_super(self.name, self.predefined_name, self.level)


RoleRef = Union[NoRole, AssignedRole]


def _is_super(name: Optional[str], predefined_name: Optional[str], level: int) -> bool:
    return (
        name == c.SUPER_ADMIN_ROLE_NAME
        or predefined_name == c.SUPER_ADMIN_ROLE_NAME
        or level >= c.ROLE_LEVEL_SUPER_ADMIN
    )


def is_super_role(role: Optional[Role]) -> bool:
    """True if the role is the apex role (by name, predefined name or level)."""
    if role is None:
        return False
    return _is_super(role.name, role.predefined_name, role.level)


def role_ref(role: Optional[Role]) -> RoleRef:
    """Wrap an optional Role row into the RoleRef union."""
    if role is None or role.deleted_at is not None:
        return NoRole()
    return AssignedRole(
        id=role.id, level=role.level, name=role.name, predefined_name=role.predefined_name,
    )


def role_ref_for_user(user: User) -> RoleRef:
    return role_ref(user.role) if user.role_id is not None else NoRole()


def count_super_holders(db: Session) -> int:
    """Number of live principals holding a role at level >= 100."""
    return (
        db.query(func.count(User.id))
        .join(Role, User.role_id == Role.id)
        .filter(
            Role.level >= c.ROLE_LEVEL_SUPER_ADMIN,
            User.deleted_at.is_(None),
        )
        .scalar()
    )


def organization_types_for_role(db: Session, role_id: int) -> List[str]:
    rows = (
        db.query(RoleOrganizationType.organization_type)
        .filter(RoleOrganizationType.role_id == role_id)
        .all()
    )
    return sorted(r[0] for r in rows)


def validate_role_change(
    db: Session,
    actor: User,
    target: Optional[User],
    new_role: Optional[Role],
) -> None:
    """Check that ``actor`` may move ``target`` from its current role to ``new_role``.

    ``target`` is None when the role is set on a principal being created;
    ``new_role`` is None when the current role is being revoked.

    Raises:
        AuthorizationError: Self-change, missing or insufficient authority.
        ResourceConflictError: A second super-role holder would be created.
    """
    if target is not None and target.id == actor.id:
        raise AuthorizationError(c.MSG_CANNOT_CHANGE_OWN_ROLE)

    actor_role = role_ref_for_user(actor)
    if isinstance(actor_role, NoRole):
        raise AuthorizationError(c.MSG_CURRENT_USER_HAS_NO_ROLE)

    current = role_ref_for_user(target) if target is not None else NoRole()
    if current.is_super and not actor_role.is_super:
        raise AuthorizationError(c.MSG_ONLY_SUPER_ADMIN_CAN_MODIFY)
    if isinstance(current, AssignedRole) and current.level >= actor_role.level:
        raise AuthorizationError(c.MSG_INSUFFICIENT_AUTHORITY)

    if new_role is None:
        return

    if is_super_role(new_role):
        if not actor_role.is_super:
            raise AuthorizationError(c.MSG_ONLY_SUPER_ADMIN_CAN_ASSIGN)
        # Checked ahead of the level rule: a second holder is a conflict.
        already_holder = current.level >= c.ROLE_LEVEL_SUPER_ADMIN
        if count_super_holders(db) > 0 and not already_holder:
            raise ResourceConflictError(c.MSG_ONLY_ONE_SUPER_ADMIN)

    if new_role.level >= actor_role.level:
        raise AuthorizationError(c.MSG_INSUFFICIENT_AUTHORITY)


def validate_custom_role_level(level: int, actor_level: int) -> None:
    """Creation band for custom roles.

    Raises:
        AuthorizationError: The level is not strictly below the actor's level.
        ValidationError: The level is outside the custom-role band.
    """
    if level >= actor_level:
        raise AuthorizationError(
            f"Cannot use role level {level}. Role level must be below your current level ({actor_level})"
        )
    low, high = settings.ROLE_MIN_CUSTOM_LEVEL, settings.ROLE_MAX_CUSTOM_LEVEL
    if level < low or level > high:
        raise ValidationError(f"Role level must be between {low} and {high}")
