"""Organization tree, membership and history API router."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from orgauth.api.deps import actor_with, get_current_actor
from orgauth.db.session import get_db
from orgauth.models.user import User
from orgauth.schemas.schemas import (
    BulkAssignRequest, BulkAssignResponse, HistoryListResponse, JoinOrganizationRequest,
    MembershipOut, MembershipRequest, MembershipUpdateRequest, MessageResponse,
    OrganizationCreateRequest, OrganizationDetailResponse, OrganizationListResponse,
    OrganizationOut, OrganizationUpdateRequest,
)
from orgauth.services.organization_service import UNSET as PARENT_UNSET, organization_service
from orgauth.services.user_service import UNSET as ROLE_UNSET, user_service

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get("", response_model=OrganizationListResponse)
def list_organizations(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    organization_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:read")),
):
    """Organizations within the caller's visibility."""
    return organization_service.list_organizations(
        db, actor, page, page_size, organization_type, search,
    )


@router.post("", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
def create_organization(
    body: OrganizationCreateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:create")),
):
    return organization_service.create_organization(
        db, actor, body.name, body.organization_type,
        parent_id=body.parent_id,
        description=body.description,
        code=body.code,
    )


@router.post("/join", response_model=MembershipOut, status_code=status.HTTP_201_CREATED)
def join_organization(
    body: JoinOrganizationRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(get_current_actor),
):
    """Join an organization by its eight-character code."""
    return organization_service.join_organization(db, actor, body.code)


@router.get("/{organization_id}", response_model=OrganizationDetailResponse)
def get_organization(
    organization_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:read")),
):
    return organization_service.get_organization_detail(db, actor, organization_id)


@router.put("/{organization_id}", response_model=OrganizationOut)
def update_organization(
    organization_id: int,
    body: OrganizationUpdateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:update")),
):
    parent_id = body.parent_id if "parent_id" in body.model_fields_set else PARENT_UNSET
    return organization_service.update_organization(
        db, actor, organization_id,
        name=body.name,
        description=body.description,
        is_active=body.is_active,
        parent_id=parent_id,
    )


@router.delete("/{organization_id}", response_model=MessageResponse)
def delete_organization(
    organization_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:delete")),
):
    organization_service.delete_organization(db, actor, organization_id)
    return MessageResponse(message="Organization deleted")


@router.post("/{organization_id}/leave", response_model=MessageResponse)
def leave_organization(
    organization_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(get_current_actor),
):
    organization_service.leave_organization(db, actor, organization_id)
    return MessageResponse(message="Left organization")


# ---- Members ----

@router.get("/{organization_id}/members", response_model=List[MembershipOut])
def list_members(
    organization_id: int,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:read")),
):
    organization_service.ensure_visible(db, actor, organization_id)
    return user_service.list_organization_members(db, organization_id, include_inactive)


@router.post(
    "/{organization_id}/members",
    response_model=MembershipOut,
    status_code=status.HTTP_201_CREATED,
)
def add_member(
    organization_id: int,
    body: MembershipRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:manage_members")),
):
    return user_service.assign_user_to_organization(
        db, actor, body.user_id, organization_id, body.role_id, body.reason,
    )


@router.post("/{organization_id}/members/bulk", response_model=BulkAssignResponse)
def bulk_add_members(
    organization_id: int,
    body: BulkAssignRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:manage_members")),
):
    """Assign several principals; failures are reported per user."""
    return user_service.bulk_assign_users_to_organization(
        db, actor, body.user_ids, organization_id, body.role_id, body.reason,
    )


@router.put("/{organization_id}/members/{user_id}", response_model=MembershipOut)
def update_member(
    organization_id: int,
    user_id: int,
    body: MembershipUpdateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:manage_members")),
):
    role_id = body.role_id if "role_id" in body.model_fields_set else ROLE_UNSET
    return user_service.update_user_organization(
        db, actor, user_id, organization_id,
        role_id=role_id,
        is_active=body.is_active,
        reason=body.reason,
    )


@router.delete("/{organization_id}/members/{user_id}", response_model=MessageResponse)
def remove_member(
    organization_id: int,
    user_id: int,
    reason: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("organizations:manage_members")),
):
    user_service.remove_user_from_organization(db, actor, user_id, organization_id, reason)
    return MessageResponse(message="Member removed")


@router.get("/{organization_id}/history", response_model=HistoryListResponse)
def organization_history(
    organization_id: int,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("history:read")),
):
    organization_service.ensure_visible(db, actor, organization_id)
    return user_service.get_organization_history(db, organization_id, page, page_size)
