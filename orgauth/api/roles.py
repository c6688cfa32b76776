"""Roles and permission catalogue API routers."""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from orgauth.api.deps import actor_with
from orgauth.db.session import get_db
from orgauth.models.user import User
from orgauth.schemas.schemas import (
    MessageResponse, PermissionCreateRequest, PermissionOut, PermissionUpdateRequest,
    RoleCreateRequest, RoleOut, RolePermissionsRequest, RoleUpdateRequest,
)
from orgauth.services.role_hierarchy import role_ref_for_user
from orgauth.services.role_service import permission_service, role_service

router = APIRouter(prefix="/roles", tags=["roles"])
permissions_router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get("", response_model=List[RoleOut])
def list_roles(db: Session = Depends(get_db), actor: User = Depends(actor_with("roles:read"))):
    """Roles strictly below the caller's level."""
    return role_service.list_roles(db, actor)


@router.get("/predefined-options")
def predefined_role_options(actor: User = Depends(actor_with("roles:read"))):
    return role_service.get_predefined_role_options(role_ref_for_user(actor).level)


@router.get("/organization-type/{organization_type}", response_model=List[RoleOut])
def roles_for_organization_type(
    organization_type: str,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("roles:read")),
):
    return role_service.get_roles_for_organization_type(db, actor, organization_type)


@router.get("/{role_id}", response_model=RoleOut)
def get_role(role_id: int, db: Session = Depends(get_db), actor: User = Depends(actor_with("roles:read"))):
    return role_service.get_role(db, role_id)


@router.post("", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("roles:create")),
):
    """Create a custom role below the caller's level."""
    return role_service.create_role(
        db, actor, body.name, body.level,
        description=body.description,
        permission_names=body.permission_names,
        organization_types=body.organization_types,
        predefined_name=body.predefined_name,
    )


@router.put("/{role_id}", response_model=RoleOut)
def update_role(
    role_id: int,
    body: RoleUpdateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("roles:update")),
):
    return role_service.update_role(
        db, actor, role_id,
        name=body.name,
        description=body.description,
        level=body.level,
        is_active=body.is_active,
        organization_types=body.organization_types,
    )


@router.put("/{role_id}/permissions", response_model=RoleOut)
def replace_role_permissions(
    role_id: int,
    body: RolePermissionsRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("roles:update")),
):
    """Replace the role's permission set."""
    return role_service.update_role_permissions(db, actor, role_id, body.permission_names)


@router.delete("/{role_id}", response_model=MessageResponse)
def delete_role(role_id: int, db: Session = Depends(get_db), actor: User = Depends(actor_with("roles:delete"))):
    role_service.delete_role(db, actor, role_id)
    return MessageResponse(message="Role deleted")


# ---- Permission catalogue ----

@permissions_router.get("", response_model=List[PermissionOut])
def list_permissions(db: Session = Depends(get_db), actor: User = Depends(actor_with("permissions:read"))):
    return permission_service.list_permissions(db)


@permissions_router.get("/{permission_id}", response_model=PermissionOut)
def get_permission(
    permission_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("permissions:read")),
):
    return permission_service.get_permission(db, permission_id)


@permissions_router.post("", response_model=PermissionOut, status_code=status.HTTP_201_CREATED)
def create_permission(
    body: PermissionCreateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("permissions:manage")),
):
    return permission_service.create_permission(db, body.name, body.description)


@permissions_router.put("/{permission_id}", response_model=PermissionOut)
def update_permission(
    permission_id: int,
    body: PermissionUpdateRequest,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("permissions:manage")),
):
    """Rename or describe a permission; renames refresh the caches of roles using it."""
    return permission_service.update_permission(
        db, permission_id, name=body.name, description=body.description,
    )


@permissions_router.delete("/{permission_id}", response_model=MessageResponse)
def delete_permission(
    permission_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(actor_with("permissions:manage")),
):
    permission_service.delete_permission(db, permission_id)
    return MessageResponse(message="Permission deleted")
