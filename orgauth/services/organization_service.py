"""Organization service: tree maintenance, visibility-filtered listing, join/leave."""

import logging
import random
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from orgauth.core import constants as c
from orgauth.core.exceptions import (
    AuthorizationError, ResourceConflictError, ResourceNotFoundError, ValidationError,
)
from orgauth.models.organization import Organization, UserOrganization
from orgauth.models.user import User
from orgauth.services.history_service import history_service, page_bounds
from orgauth.services.organization_hierarchy import (
    get_accessible_organization_ids, get_parent_chain, validate_child_type,
    validate_organization_type, validate_root_type, would_create_cycle,
)
from orgauth.services.role_hierarchy import role_ref_for_user

logger = logging.getLogger("orgauth.organizations")

CODE_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{3}$")
CODE_PREFIX_LENGTH = 5
CODE_ATTEMPTS = 100
BUSINESS_TERMS = ("PT", "CV", "UD", "TOKO", "STORE", "COMPANY", "CORP", "LTD", "INC")

UNSET: Any = object()


def _code_prefix(name: str) -> str:
    cleaned = name.upper()
    for term in BUSINESS_TERMS:
        cleaned = cleaned.replace(term, "")
    cleaned = re.sub(r"[^A-Z]", "", cleaned)
    return cleaned[:CODE_PREFIX_LENGTH].ljust(CODE_PREFIX_LENGTH, "X")


def generate_organization_code(name: str, rng: Optional[random.Random] = None) -> str:
    """Five letters from the name (business terms stripped, padded with X) plus three digits.

    "PT Beresin Tech" -> "BERES" + e.g. "042".
    """
    rng = rng or random
    return _code_prefix(name) + "".join(str(rng.randint(0, 9)) for _ in range(3))


def is_valid_organization_code(code: str) -> bool:
    return bool(CODE_PATTERN.match(code or ""))


class OrganizationService:
    """Organization lifecycle within the holding/company/store tree."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.SystemRandom()

    # ── Lookups ─────────────────────────────────────────────────

    @staticmethod
    def get_organization(db: Session, organization_id: int) -> Organization:
        org = (
            db.query(Organization)
            .filter(Organization.id == organization_id, Organization.deleted_at.is_(None))
            .first()
        )
        if not org:
            raise ResourceNotFoundError(f"Organization {organization_id} not found")
        return org

    @staticmethod
    def get_by_code(db: Session, code: str) -> Organization:
        org = (
            db.query(Organization)
            .filter(Organization.code == code.upper(), Organization.deleted_at.is_(None))
            .first()
        )
        if not org:
            raise ResourceNotFoundError("Organization not found")
        return org

    @staticmethod
    def _visible_ids(db: Session, actor: User):
        return get_accessible_organization_ids(db, actor.id, role_ref_for_user(actor).level)

    def ensure_visible(self, db: Session, actor: User, organization_id: int) -> None:
        visible = self._visible_ids(db, actor)
        if visible is not None and organization_id not in visible:
            raise AuthorizationError(c.MSG_ORGANIZATION_ACCESS_DENIED)

    def _ensure_can_place_root(self, db: Session, actor: User, organization_type: str) -> None:
        validate_root_type(organization_type)
        if self._visible_ids(db, actor) is not None:
            raise AuthorizationError(c.MSG_ROOT_ORGANIZATION_DENIED)

    def _allocate_code(self, db: Session, name: str) -> str:
        for _ in range(CODE_ATTEMPTS):
            code = generate_organization_code(name, self.rng)
            if db.query(Organization.id).filter(Organization.code == code).first() is None:
                return code
        raise ResourceConflictError(f"Could not allocate a unique code for '{name}'")

    # ── Commands ────────────────────────────────────────────────

    def create_organization(
        self,
        db: Session,
        actor: User,
        name: str,
        organization_type: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
        code: Optional[str] = None,
    ) -> Organization:
        """Create an organization; the code is generated from the name when absent.

        Raises:
            ValidationError: Unknown type, bad code format, disallowed parent type
                or a non-holding without a parent.
            ResourceConflictError: Code already taken.
            AuthorizationError: The parent is not visible to the actor, or a
                root is requested by an actor below platform visibility.
        """
        validate_organization_type(organization_type)
        if parent_id is None:
            self._ensure_can_place_root(db, actor, organization_type)
        else:
            parent = self.get_organization(db, parent_id)
            self.ensure_visible(db, actor, parent.id)
            validate_child_type(parent.organization_type, organization_type)

        if code:
            code = code.upper()
            if not is_valid_organization_code(code):
                raise ValidationError("Organization code must be 5 letters followed by 3 digits")
            if db.query(Organization.id).filter(Organization.code == code).first() is not None:
                raise ResourceConflictError(f"Organization code '{code}' already exists")
        else:
            code = self._allocate_code(db, name)

        org = Organization(
            name=name,
            code=code,
            organization_type=organization_type,
            description=description,
            parent_id=parent_id,
            is_active=True,
            created_by=actor.id,
        )
        db.add(org)
        db.commit()
        db.refresh(org)
        logger.info("User %s created %s organization %s (%s)", actor.id, organization_type, org.id, code)
        return org

    def update_organization(
        self,
        db: Session,
        actor: User,
        organization_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
        parent_id: Any = UNSET,
    ) -> Organization:
        """Update fields; re-parenting is checked for adjacency and cycles."""
        org = self.get_organization(db, organization_id)
        self.ensure_visible(db, actor, org.id)

        if parent_id is not UNSET and parent_id != org.parent_id:
            if parent_id is None:
                self._ensure_can_place_root(db, actor, org.organization_type)
            else:
                parent = self.get_organization(db, parent_id)
                self.ensure_visible(db, actor, parent.id)
                validate_child_type(parent.organization_type, org.organization_type)
                if would_create_cycle(db, org.id, parent.id):
                    raise ValidationError("Organization cannot be moved under its own descendant")
            org.parent_id = parent_id
        if name is not None:
            org.name = name
        if description is not None:
            org.description = description
        if is_active is not None:
            org.is_active = is_active

        db.commit()
        db.refresh(org)
        return org

    def delete_organization(self, db: Session, actor: User, organization_id: int) -> None:
        """Soft-delete an organization with no live children and no active members."""
        org = self.get_organization(db, organization_id)
        self.ensure_visible(db, actor, org.id)

        children = (
            db.query(Organization.id)
            .filter(Organization.parent_id == org.id, Organization.deleted_at.is_(None))
            .count()
        )
        if children:
            raise ResourceConflictError("Organization still has child organizations")
        members = (
            db.query(UserOrganization.id)
            .filter(UserOrganization.organization_id == org.id, UserOrganization.is_active.is_(True))
            .count()
        )
        if members:
            raise ResourceConflictError("Organization still has active members")

        org.deleted_at = datetime.now(timezone.utc)
        org.is_active = False
        db.commit()
        logger.info("User %s deleted organization %s", actor.id, org.id)

    # ── Queries ─────────────────────────────────────────────────

    def get_organization_detail(
        self, db: Session, actor: User, organization_id: int,
    ) -> Dict[str, Any]:
        """Organization with its ancestors, direct children and active member count."""
        org = self.get_organization(db, organization_id)
        self.ensure_visible(db, actor, org.id)
        children = (
            db.query(Organization)
            .filter(Organization.parent_id == org.id, Organization.deleted_at.is_(None))
            .order_by(Organization.name)
            .all()
        )
        member_count = (
            db.query(UserOrganization.id)
            .filter(UserOrganization.organization_id == org.id, UserOrganization.is_active.is_(True))
            .count()
        )
        return {
            "organization": org,
            "parents": get_parent_chain(db, org),
            "children": children,
            "member_count": member_count,
        }

    def list_organizations(
        self,
        db: Session,
        actor: User,
        page: int = 1,
        page_size: Optional[int] = None,
        organization_type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Organizations visible to the actor, paginated."""
        page, page_size = page_bounds(page, page_size)
        query = db.query(Organization).filter(Organization.deleted_at.is_(None))

        visible = self._visible_ids(db, actor)
        if visible is not None:
            if not visible:
                return {"organizations": [], "total": 0, "page": page, "page_size": page_size}
            query = query.filter(Organization.id.in_(visible))
        if organization_type:
            query = query.filter(Organization.organization_type == organization_type)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Organization.name.ilike(pattern), Organization.code.ilike(pattern)))

        total = query.count()
        organizations = (
            query.order_by(Organization.name, Organization.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "organizations": organizations,
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    # ── Self-service membership ─────────────────────────────────

    def join_organization(self, db: Session, user: User, code: str) -> UserOrganization:
        """Join an active organization by its code, without an organization role."""
        org = self.get_by_code(db, code)
        if not org.is_active:
            raise ValidationError("Organization is not active")

        membership = (
            db.query(UserOrganization)
            .filter(UserOrganization.user_id == user.id, UserOrganization.organization_id == org.id)
            .first()
        )
        if membership is not None and membership.is_active:
            raise ResourceConflictError("User is already a member of this organization")
        if membership is None:
            membership = UserOrganization(user_id=user.id, organization_id=org.id)
            db.add(membership)
        membership.role_id = None
        membership.is_active = True
        membership.joined_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(membership)

        history_service.record(
            db, user.id, org.id, c.HISTORY_ASSIGNED, action_by=user.id,
            new_status=True, reason="Joined by code",
        )
        return membership

    def leave_organization(self, db: Session, user: User, organization_id: int) -> None:
        membership = (
            db.query(UserOrganization)
            .filter(
                UserOrganization.user_id == user.id,
                UserOrganization.organization_id == organization_id,
                UserOrganization.is_active.is_(True),
            )
            .first()
        )
        if membership is None:
            raise ResourceNotFoundError("User is not a member of this organization")

        previous_role = membership.role.name if membership.role is not None else None
        membership.is_active = False
        db.commit()
        history_service.record(
            db, user.id, organization_id, c.HISTORY_REMOVED, action_by=user.id,
            previous_role=previous_role, previous_status=True, new_status=False,
            reason="Left organization",
        )


organization_service = OrganizationService()
