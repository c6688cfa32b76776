"""User management API router."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from orgauth.api.deps import actor_with
from orgauth.db.session import get_db
from orgauth.models.user import User
from orgauth.schemas.schemas import (
    HistoryListResponse, MembershipOut, MessageResponse, UserCreateRequest,
    UserListResponse, UserOut, UserUpdateRequest,
)
from orgauth.services.user_service import UNSET, user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("users:read")),
):
    """Principals below the caller, restricted to the caller's organizations."""
    return user_service.list_users(db, actor, page, page_size, search)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("users:create")),
):
    return user_service.create_user(
        db, actor, body.username,
        password=body.password,
        email=body.email,
        full_name=body.full_name,
        role_id=body.role_id,
        google_id=body.google_id,
    )


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_db), actor: User = Depends(actor_with("users:read"))):
    return user_service.get_user(db, user_id)


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    body: UserUpdateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("users:update")),
):
    """Profile, status and global role changes under the hierarchy rules."""
    role_id = body.role_id if "role_id" in body.model_fields_set else UNSET
    return user_service.update_user(
        db, actor, user_id,
        full_name=body.full_name,
        email=body.email,
        avatar_url=body.avatar_url,
        is_active=body.is_active,
        role_id=role_id,
    )


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(user_id: int, db: Session = Depends(get_db), actor: User = Depends(actor_with("users:delete"))):
    user_service.delete_user(db, actor, user_id)
    return MessageResponse(message="User deleted")


@router.get("/{user_id}/organizations", response_model=List[MembershipOut])
def list_user_organizations(
    user_id: int,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("users:read")),
):
    user_service.get_user(db, user_id)
    return user_service.list_user_organizations(db, user_id, include_inactive)


@router.get("/{user_id}/history", response_model=HistoryListResponse)
def get_user_history(
    user_id: int,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("history:read")),
):
    return user_service.get_user_history(db, user_id, page, page_size)
