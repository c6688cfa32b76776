"""Password hashing, bearer-token extraction and permission dependencies."""

from typing import Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from orgauth.core.config import settings
from orgauth.core.constants import MSG_INSUFFICIENT_PERMISSIONS
from orgauth.core.exceptions import AuthenticationError, forbidden, unauthorized
from orgauth.db.session import get_db
from orgauth.services.authorization_service import (
    AuthorizationService, authorization_service,
)
from orgauth.services.token_service import AccessClaims, token_service

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)

# Verified against when the user does not exist so timing does not reveal it.
_DUMMY_HASH = bcrypt.hashpw(b"orgauth-dummy-password", bcrypt.gensalt(rounds=4)).decode("utf-8")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash. A missing or malformed hash never matches."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def burn_password_check(plain_password: str) -> None:
    """Spend a hash comparison's worth of time on a non-existent account."""
    bcrypt.checkpw(plain_password.encode("utf-8"), _DUMMY_HASH.encode("utf-8"))


def get_authorization_service() -> AuthorizationService:
    return authorization_service


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> AccessClaims:
    """Validate the bearer access token and return its claims."""
    if credentials is None:
        raise unauthorized()
    try:
        return token_service.decode_access_token(credentials.credentials)
    except AuthenticationError as e:
        raise unauthorized(e.message)


class RequirePermission:
    """Dependency that checks a permission for the bearer token.

    Tokens scoped to an organization are decided on the membership's role,
    other tokens on the principal's global role.
    """

    def __init__(self, permission: str):
        self.permission = permission

    def __call__(
        self,
        claims: AccessClaims = Depends(get_current_claims),
        db: Session = Depends(get_db),
        authorization: AuthorizationService = Depends(get_authorization_service),
    ) -> AccessClaims:
        if claims.organization_id is not None:
            allowed = authorization.check_permission_in_organization(
                db, claims.user_id, claims.organization_id, self.permission,
            )
        elif claims.role_id is None:
            allowed = False
        else:
            allowed = authorization.check_permission(db, claims.role_id, self.permission)
        if not allowed:
            raise forbidden(MSG_INSUFFICIENT_PERMISSIONS)
        return claims
