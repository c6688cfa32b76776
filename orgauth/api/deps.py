"""Router dependencies resolving the calling principal."""

from fastapi import Depends
from sqlalchemy.orm import Session

from orgauth.core.security import RequirePermission, get_current_claims
from orgauth.db.session import get_db
from orgauth.models.user import User
from orgauth.services.auth_service import auth_service
from orgauth.services.token_service import AccessClaims


def get_current_actor(
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> User:
    """Live, active principal behind the bearer token."""
    return auth_service.get_current_user(db, claims.user_id)


def actor_with(permission: str):
    """Dependency checking ``permission`` and returning the calling principal."""
    checker = RequirePermission(permission)

    def _actor(
        claims: AccessClaims = Depends(checker),
        db: Session = Depends(get_db),
    ) -> User:
        return auth_service.get_current_user(db, claims.user_id)

    return _actor
