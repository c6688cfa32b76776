"""Auth API router: login, register, refresh, logout, me, organization-token."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from orgauth.db.session import get_db
from orgauth.schemas.schemas import (
    LoginRequest, RefreshRequest, LogoutRequest, OrganizationTokenRequest, RegisterRequest,
    TokenResponse, OrganizationTokenResponse, MeResponse, UserOut, MessageResponse,
)
from orgauth.services.auth_service import AuthService, auth_service
from orgauth.core.config import settings
from orgauth.core.middleware import limiter
from orgauth.core.security import get_current_claims
from orgauth.services.token_service import AccessClaims
from orgauth.services.user_service import user_service

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service() -> AuthService:
    return auth_service


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
):
    """Authenticate and return a token pair with the access snapshot."""
    return service.authenticate(db, body.username, body.password)


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)):
    """Self-service sign-up; the new principal has no role until assigned one."""
    return user_service.register(
        db, body.username, body.password, email=body.email, full_name=body.full_name,
    )


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit(settings.REFRESH_RATE_LIMIT)
def refresh(
    request: Request,
    body: RefreshRequest,
    db: Session = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
):
    """Rotate the refresh token."""
    return service.refresh(db, body.refresh_token)


@router.post("/logout", response_model=MessageResponse)
def logout(body: LogoutRequest, service: AuthService = Depends(get_auth_service)):
    """Revoke the presented refresh token."""
    service.logout(body.refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse)
def get_me(
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
):
    """Current principal with role, permissions and visible organizations."""
    user = service.get_current_user(db, claims.user_id)
    snapshot = service.authorization.get_access_snapshot(db, user)
    return MeResponse(user=UserOut.model_validate(user), **snapshot)


@router.post("/organization-token", response_model=OrganizationTokenResponse)
def organization_token(
    body: OrganizationTokenRequest,
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    service: AuthService = Depends(get_auth_service),
):
    """Issue an access token scoped to one of the caller's organizations."""
    return service.issue_organization_token(db, claims.user_id, body.organization_id)
