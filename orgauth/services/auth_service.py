"""Auth service: password and external login, refresh rotation, logout."""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis
from sqlalchemy.orm import Session

from orgauth.core import constants as c
from orgauth.core.exceptions import (
    AuthenticationError, AuthorizationError, InternalError,
)
from orgauth.core.security import burn_password_check, verify_password
from orgauth.models.user import User
from orgauth.services.authorization_service import (
    AuthorizationService, authorization_service,
)
from orgauth.services.role_hierarchy import role_ref_for_user, NoRole
from orgauth.services.session_store import SessionStore, session_store
from orgauth.services.token_service import TokenService, token_service

logger = logging.getLogger("orgauth.auth")


def user_summary(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "avatar_url": user.avatar_url,
        "auth_provider": user.auth_provider,
        "role_id": user.role_id,
    }


class AuthService:
    """Issues, rotates and revokes sessions.

    Session-store failures on the issuing paths fail closed: no token is
    returned unless its session has been recorded.
    """

    def __init__(
        self,
        sessions: SessionStore,
        authorization: AuthorizationService,
        tokens: TokenService,
    ):
        self.sessions = sessions
        self.authorization = authorization
        self.tokens = tokens

    @staticmethod
    def _find_live_user(db: Session, **filters) -> Optional[User]:
        return (
            db.query(User)
            .filter_by(**filters)
            .filter(User.deleted_at.is_(None))
            .first()
        )

    def _issue_pair(self, db: Session, user: User) -> Dict[str, Any]:
        ref = role_ref_for_user(user)
        role_id = None if isinstance(ref, NoRole) else ref.id
        access_token = self.tokens.create_access_token(user.id, role_id)
        refresh_token = self.tokens.create_refresh_token(user.id)
        try:
            self.sessions.store(refresh_token, user.id)
        except redis.RedisError as e:
            raise InternalError(e, context=f"storing session for user {user.id}")

        snapshot = self.authorization.get_access_snapshot(db, user)
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": int(self.tokens.access_ttl.total_seconds()),
            "user": user_summary(user),
            **snapshot,
        }

    def authenticate(self, db: Session, username: str, password: str) -> Dict[str, Any]:
        """Verify a local password and open a session.

        Unknown user, wrong password, inactive account and non-local
        provenance are indistinguishable to the caller.

        Raises:
            AuthenticationError: If the credentials are not accepted.
        """
        user = self._find_live_user(db, username=username)
        if user is None:
            burn_password_check(password)
            raise AuthenticationError(c.MSG_INVALID_CREDENTIALS)
        if user.auth_provider != c.AUTH_PROVIDER_LOCAL:
            burn_password_check(password)
            raise AuthenticationError(c.MSG_INVALID_CREDENTIALS)
        if not verify_password(password, user.hashed_password) or not user.is_active:
            raise AuthenticationError(c.MSG_INVALID_CREDENTIALS)

        result = self._issue_pair(db, user)
        user.last_login_at = datetime.now(timezone.utc)
        db.commit()
        logger.info("User %s logged in", user.id)
        return result

    def refresh(self, db: Session, refresh_token: str) -> Dict[str, Any]:
        """Rotate a refresh token: the presented token is consumed exactly once.

        Raises:
            AuthenticationError: Invalid, unknown, reused or foreign token,
                or the principal is gone or inactive.
            InternalError: The session store failed; nothing was issued.
        """
        subject = self.tokens.decode_refresh_token(refresh_token)
        try:
            stored = self.sessions.get_principal(refresh_token)
        except redis.RedisError as e:
            raise InternalError(e, context="looking up refresh session")
        if stored is None:
            raise AuthenticationError(c.MSG_REFRESH_TOKEN_REUSED)
        if stored != subject:
            logger.warning("Refresh token subject does not match its session")
            raise AuthenticationError(c.MSG_INVALID_TOKEN)

        user_id = int(subject)
        try:
            consumed = self.sessions.consume(refresh_token, user_id)
        except redis.RedisError as e:
            raise InternalError(e, context="consuming refresh session")
        if not consumed:
            # Another caller rotated this token first.
            raise AuthenticationError(c.MSG_REFRESH_TOKEN_REUSED)

        user = self._find_live_user(db, id=user_id)
        if user is None or not user.is_active:
            raise AuthenticationError(c.MSG_INVALID_TOKEN)
        return self._issue_pair(db, user)

    def logout(self, refresh_token: str) -> None:
        """Delete the presented refresh token. Always succeeds for the caller."""
        try:
            self.sessions.revoke(refresh_token)
        except redis.RedisError:
            logger.error("Failed to revoke refresh session on logout", exc_info=True)

    def revoke_all_sessions(self, user_id: int) -> int:
        """Delete every refresh session of a principal.

        Raises:
            InternalError: The session store failed.
        """
        try:
            return self.sessions.revoke_all_for_principal(user_id)
        except redis.RedisError as e:
            raise InternalError(e, context=f"revoking sessions for user {user_id}")

    def get_current_user(self, db: Session, user_id: int) -> User:
        user = self._find_live_user(db, id=user_id)
        if user is None or not user.is_active:
            raise AuthenticationError(c.MSG_INVALID_TOKEN)
        return user

    # ── External identity ───────────────────────────────────────

    @staticmethod
    def _unique_username(db: Session, email: str) -> str:
        base = re.sub(r"[^a-zA-Z0-9_.]", "", email.split("@")[0])[:40] or "user"
        candidate, suffix = base, 1
        while db.query(User.id).filter(User.username == candidate).first() is not None:
            suffix += 1
            candidate = f"{base}{suffix}"
        return candidate

    def login_with_external_identity(
        self,
        db: Session,
        google_id: str,
        email: str,
        full_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        email_verified: bool = True,
    ) -> Dict[str, Any]:
        """Log in with verified Google user info, linking or creating the principal.

        Linking an existing local account switches its provenance to google
        and clears the local hash so exactly one provenance stays active.
        """
        if not google_id or not email or not email_verified:
            raise AuthenticationError(c.MSG_INVALID_CREDENTIALS)

        user = self._find_live_user(db, google_id=google_id)
        if user is None:
            user = self._find_live_user(db, email=email)
            if user is not None:
                logger.info("Linking Google identity to user %s", user.id)
                user.google_id = google_id
                user.auth_provider = c.AUTH_PROVIDER_GOOGLE
                user.hashed_password = None
                if avatar_url and not user.avatar_url:
                    user.avatar_url = avatar_url
            else:
                user = User(
                    username=self._unique_username(db, email),
                    email=email,
                    full_name=full_name,
                    avatar_url=avatar_url,
                    google_id=google_id,
                    auth_provider=c.AUTH_PROVIDER_GOOGLE,
                    is_active=True,
                )
                db.add(user)
                logger.info("Creating user from Google identity %s", email)
            db.flush()

        if not user.is_active:
            db.rollback()
            raise AuthenticationError(c.MSG_INVALID_CREDENTIALS)

        user.last_login_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(user)
        return self._issue_pair(db, user)

    # ── Organization context ────────────────────────────────────

    def issue_organization_token(
        self, db: Session, user_id: int, organization_id: int,
    ) -> Dict[str, Any]:
        """Access token scoped to one organization and its membership role.

        Raises:
            AuthorizationError: No active membership in the organization.
        """
        user = self.get_current_user(db, user_id)
        if not self.authorization.check_user_organization_access(db, user.id, organization_id):
            raise AuthorizationError(c.MSG_ORGANIZATION_ACCESS_DENIED)
        role_id = self.authorization.get_user_role_in_organization(db, user.id, organization_id)
        permissions = self.authorization.get_user_permissions_in_organization(
            db, user.id, organization_id,
        )
        return {
            "access_token": self.tokens.create_access_token(user.id, role_id, organization_id),
            "token_type": "bearer",
            "expires_in": int(self.tokens.access_ttl.total_seconds()),
            "organization_id": organization_id,
            "role_id": role_id,
            "permissions": permissions,
        }


auth_service = AuthService(session_store, authorization_service, token_service)
