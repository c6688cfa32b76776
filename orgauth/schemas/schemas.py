"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Auth ----
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)

class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)

class OrganizationTokenRequest(BaseModel):
    organization_id: int

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int
    user: Optional[Dict[str, Any]] = None
    role: Optional[Dict[str, Any]] = None
    permissions: List[str] = []
    organization_ids: Optional[List[int]] = None

class OrganizationTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    organization_id: int
    role_id: Optional[int] = None
    permissions: List[str] = []


# ---- User ----
class UserOut(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    auth_provider: str
    role_id: Optional[int] = None
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MeResponse(BaseModel):
    user: UserOut
    role: Optional[Dict[str, Any]] = None
    permissions: List[str] = []
    organization_ids: Optional[List[int]] = None


class UserCreateRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6)
    email: Optional[str] = None
    full_name: Optional[str] = None
    role_id: Optional[int] = None
    google_id: Optional[str] = None

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    email: Optional[str] = None
    full_name: Optional[str] = None

class UserUpdateRequest(BaseModel):
    """``role_id`` set explicitly to null removes the global role."""
    full_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: Optional[bool] = None
    role_id: Optional[int] = None

class UserListResponse(BaseModel):
    users: List[UserOut]
    total: int
    page: int
    page_size: int


# ---- Roles & Permissions ----
class PermissionOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True

class PermissionCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None

class PermissionUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None

class RoleOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    level: int
    is_system: bool
    is_active: bool
    predefined_name: Optional[str] = None
    organization_type_names: List[str] = []
    permissions: List[PermissionOut] = []

    class Config:
        from_attributes = True

class RoleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    level: int
    description: Optional[str] = None
    permission_names: List[str] = []
    organization_types: Optional[List[str]] = None
    predefined_name: Optional[str] = None

class RoleUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    level: Optional[int] = None
    is_active: Optional[bool] = None
    organization_types: Optional[List[str]] = None

class RolePermissionsRequest(BaseModel):
    permission_names: List[str]


# ---- Organizations ----
class OrganizationOut(BaseModel):
    id: int
    name: str
    code: str
    organization_type: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: bool
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class OrganizationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    organization_type: str
    parent_id: Optional[int] = None
    description: Optional[str] = None
    code: Optional[str] = None

class OrganizationUpdateRequest(BaseModel):
    """``parent_id`` set explicitly to null detaches the organization."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    parent_id: Optional[int] = None

class OrganizationListResponse(BaseModel):
    organizations: List[OrganizationOut]
    total: int
    page: int
    page_size: int

class OrganizationDetailResponse(BaseModel):
    organization: OrganizationOut
    parents: List[OrganizationOut]
    children: List[OrganizationOut]
    member_count: int

class JoinOrganizationRequest(BaseModel):
    code: str = Field(..., min_length=8, max_length=8)


# ---- Memberships & History ----
class MembershipOut(BaseModel):
    id: int
    user_id: int
    organization_id: int
    role_id: Optional[int] = None
    is_active: bool
    joined_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MembershipRequest(BaseModel):
    user_id: int
    role_id: Optional[int] = None
    reason: Optional[str] = None

class MembershipUpdateRequest(BaseModel):
    """``role_id`` set explicitly to null clears the membership role."""
    role_id: Optional[int] = None
    is_active: Optional[bool] = None
    reason: Optional[str] = None

class BulkAssignRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    role_id: Optional[int] = None
    reason: Optional[str] = None

class BulkAssignResponse(BaseModel):
    assigned: List[int]
    failed: List[Dict[str, Any]]

class HistoryOut(BaseModel):
    id: int
    user_id: int
    organization_id: int
    action: str
    previous_role: Optional[str] = None
    new_role: Optional[str] = None
    previous_status: Optional[bool] = None
    new_status: Optional[bool] = None
    action_by: Optional[int] = None
    action_at: Optional[datetime] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True

class HistoryListResponse(BaseModel):
    history: List[HistoryOut]
    total: int
    page: int
    page_size: int


# ---- Common ----
class MessageResponse(BaseModel):
    message: str
    detail: Optional[str] = None
