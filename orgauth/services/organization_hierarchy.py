"""Organization tree rules: allowed parent/child types, traversal and visibility."""

import logging
from collections import deque
from typing import Dict, FrozenSet, List, Optional, Set

from sqlalchemy.orm import Session

from orgauth.core import constants as c
from orgauth.core.config import settings
from orgauth.core.exceptions import ValidationError
from orgauth.models.organization import Organization, UserOrganization

logger = logging.getLogger("orgauth.organizations")

# Direct children allowed under each organization type.
CHILD_TYPES: Dict[str, FrozenSet[str]] = {
    c.ORG_TYPE_HOLDING: frozenset({c.ORG_TYPE_COMPANY}),
    c.ORG_TYPE_COMPANY: frozenset({c.ORG_TYPE_STORE}),
    c.ORG_TYPE_STORE: frozenset(),
}

# Descendant types visible to a member of an organization of the given type.
REACHABLE_TYPES: Dict[str, FrozenSet[str]] = {
    c.ORG_TYPE_HOLDING: frozenset({c.ORG_TYPE_COMPANY, c.ORG_TYPE_STORE}),
    c.ORG_TYPE_COMPANY: frozenset({c.ORG_TYPE_STORE}),
    c.ORG_TYPE_STORE: frozenset(),
}


def validate_organization_type(organization_type: str) -> None:
    if organization_type not in c.ORGANIZATION_TYPES:
        raise ValidationError(
            f"Invalid organization type '{organization_type}'. "
            f"Must be one of: {', '.join(c.ORGANIZATION_TYPES)}"
        )


def validate_child_type(parent_type: str, child_type: str) -> None:
    """Raise ValidationError unless ``child_type`` may sit directly under ``parent_type``."""
    if child_type not in CHILD_TYPES.get(parent_type, frozenset()):
        raise ValidationError(
            f"Organization of type '{child_type}' cannot be a child of '{parent_type}'"
        )


def validate_root_type(organization_type: str) -> None:
    """Only holdings may sit at the top of the tree."""
    if organization_type != c.ORG_TYPE_HOLDING:
        raise ValidationError(
            f"Organization of type '{organization_type}' must have a parent"
        )


def _live(db: Session):
    return db.query(Organization).filter(Organization.deleted_at.is_(None))


def get_parent_chain(db: Session, organization: Organization) -> List[Organization]:
    """Ancestors of ``organization``, nearest first.

    Stops on a repeated node so corrupted data cannot loop forever.
    """
    chain: List[Organization] = []
    visited: Set[int] = {organization.id}
    parent_id = organization.parent_id
    while parent_id is not None and parent_id not in visited:
        visited.add(parent_id)
        parent = _live(db).filter(Organization.id == parent_id).first()
        if parent is None:
            break
        chain.append(parent)
        parent_id = parent.parent_id
    if parent_id is not None and parent_id in visited:
        logger.warning("Cycle detected in organization ancestry of %s", organization.id)
    return chain


def would_create_cycle(db: Session, organization_id: int, new_parent_id: int) -> bool:
    """True if making ``new_parent_id`` the parent of ``organization_id`` closes a loop."""
    if organization_id == new_parent_id:
        return True
    visited: Set[int] = set()
    current: Optional[int] = new_parent_id
    while current is not None:
        if current == organization_id:
            return True
        if current in visited:
            # Already cyclic above the new parent; refuse rather than extend it.
            return True
        visited.add(current)
        row = db.query(Organization.parent_id).filter(Organization.id == current).first()
        current = row[0] if row else None
    return False


def get_descendant_ids(
    db: Session, organization_id: int, organization_type: Optional[str] = None,
) -> Set[int]:
    """Ids of live descendants whose type is reachable from ``organization_type``.

    Breadth-first with a visited set. When the type is omitted it is read
    from the organization row; unknown types reach nothing.
    """
    if organization_type is None:
        row = _live(db).filter(Organization.id == organization_id).first()
        if row is None:
            return set()
        organization_type = row.organization_type
    reachable = REACHABLE_TYPES.get(organization_type, frozenset())
    if not reachable:
        return set()

    result: Set[int] = set()
    visited: Set[int] = {organization_id}
    queue = deque([organization_id])
    while queue:
        current = queue.popleft()
        children = (
            _live(db)
            .filter(Organization.parent_id == current)
            .with_entities(Organization.id, Organization.organization_type)
            .all()
        )
        for child_id, child_type in children:
            if child_id in visited:
                continue
            visited.add(child_id)
            if child_type in reachable:
                result.add(child_id)
            queue.append(child_id)
    return result


def get_accessible_organization_ids(
    db: Session, user_id: int, level: int,
) -> Optional[Set[int]]:
    """Organizations a principal may see.

    Returns None (unrestricted) at or above the platform visibility level,
    otherwise the principal's active direct memberships plus every reachable
    descendant of each.
    """
    if level >= settings.PLATFORM_VISIBILITY_LEVEL:
        return None

    memberships = (
        db.query(Organization.id, Organization.organization_type)
        .join(UserOrganization, UserOrganization.organization_id == Organization.id)
        .filter(
            UserOrganization.user_id == user_id,
            UserOrganization.is_active.is_(True),
            Organization.deleted_at.is_(None),
        )
        .all()
    )
    accessible: Set[int] = set()
    for org_id, org_type in memberships:
        accessible.add(org_id)
        accessible |= get_descendant_ids(db, org_id, org_type)
    return accessible
