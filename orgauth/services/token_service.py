"""Signed, time-bounded session tokens (access + refresh)."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from orgauth.core.config import settings
from orgauth.core.constants import MSG_INVALID_TOKEN
from orgauth.core.exceptions import AuthenticationError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class AccessClaims:
    """Validated claims of an access token."""
    user_id: int
    role_id: Optional[int]
    organization_id: Optional[int]
    expires_at: datetime


def _optional_int(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise AuthenticationError(MSG_INVALID_TOKEN)
    return value


class TokenService:
    """Issues and validates HS256 tokens.

    Access tokens carry principal, role and optional organization context and
    are validated statelessly. Refresh tokens carry the subject only; their
    liveness is checked against the session store by the auth service.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_ttl: Optional[timedelta] = None,
        refresh_ttl: Optional[timedelta] = None,
    ):
        self._secret = secret or settings.JWT_SECRET.get_secret_value()
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.access_ttl = access_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRY_MINUTES)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS)

    def __repr__(self) -> str:
        return f"TokenService(algorithm={self.algorithm!r})"

    def _encode(self, claims: dict, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        claims.update({"iat": now, "nbf": now, "exp": now + ttl})
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def _decode(self, token: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except JWTError:
            raise AuthenticationError(MSG_INVALID_TOKEN)
        if payload.get("type") != expected_type:
            raise AuthenticationError(MSG_INVALID_TOKEN)
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub.isdigit():
            raise AuthenticationError(MSG_INVALID_TOKEN)
        return payload

    def create_access_token(
        self, user_id: int, role_id: Optional[int], organization_id: Optional[int] = None,
    ) -> str:
        """Create a short-lived access token."""
        claims = {
            "sub": str(user_id),
            "user_id": user_id,
            "role_id": role_id,
            "type": ACCESS_TOKEN_TYPE,
        }
        if organization_id is not None:
            claims["organization_id"] = organization_id
        return self._encode(claims, self.access_ttl)

    def create_refresh_token(self, user_id: int) -> str:
        """Create a refresh token carrying the subject only."""
        claims = {
            "sub": str(user_id),
            "jti": uuid.uuid4().hex,
            "type": REFRESH_TOKEN_TYPE,
        }
        return self._encode(claims, self.refresh_ttl)

    def decode_access_token(self, token: str) -> AccessClaims:
        """Validate signature, expiry and claim shape of an access token.

        Raises:
            AuthenticationError: If the token is invalid, expired or malformed.
        """
        payload = self._decode(token, ACCESS_TOKEN_TYPE)
        user_id = payload.get("user_id")
        if _optional_int(user_id) is None or str(user_id) != payload["sub"]:
            raise AuthenticationError(MSG_INVALID_TOKEN)
        return AccessClaims(
            user_id=user_id,
            role_id=_optional_int(payload.get("role_id")),
            organization_id=_optional_int(payload.get("organization_id")),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def decode_refresh_token(self, token: str) -> str:
        """Validate a refresh token cryptographically and return its subject.

        Raises:
            AuthenticationError: If the token is invalid, expired or malformed.
        """
        payload = self._decode(token, REFRESH_TOKEN_TYPE)
        return payload["sub"]


token_service = TokenService()
