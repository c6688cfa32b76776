"""Seed the super-admin user from env vars."""

import logging

from sqlalchemy.orm import Session

from orgauth.core.config import settings
from orgauth.core.constants import AUTH_PROVIDER_LOCAL, SUPER_ADMIN_ROLE_NAME
from orgauth.core.security import hash_password
from orgauth.models.role import Role
from orgauth.models.user import User
from orgauth.services.role_hierarchy import count_super_holders

logger = logging.getLogger("orgauth.seeds")


def seed_super_admin(db: Session) -> None:
    """Create the single super-admin user if no super holder exists yet."""
    super_admin_role = db.query(Role).filter(Role.name == SUPER_ADMIN_ROLE_NAME).first()
    if not super_admin_role:
        logger.warning("super_admin role not found. Run seed_rbac first.")
        return

    if count_super_holders(db) > 0:
        logger.info("Super admin already exists, skipping.")
        return

    existing = db.query(User).filter(User.username == settings.SUPER_ADMIN_USERNAME).first()
    if existing:
        logger.warning(
            "User '%s' exists without the super_admin role; not promoting it.",
            settings.SUPER_ADMIN_USERNAME,
        )
        return

    admin = User(
        username=settings.SUPER_ADMIN_USERNAME,
        email=settings.SUPER_ADMIN_EMAIL,
        hashed_password=hash_password(settings.SUPER_ADMIN_PASSWORD),
        full_name="Super Admin",
        auth_provider=AUTH_PROVIDER_LOCAL,
        is_active=True,
        role_id=super_admin_role.id,
    )
    db.add(admin)
    db.commit()
    logger.info("Created super admin: %s", settings.SUPER_ADMIN_USERNAME)
