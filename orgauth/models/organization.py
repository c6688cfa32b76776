"""Organization, UserOrganization and membership history models."""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey,
    UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from orgauth.db.base import Base


class Organization(Base):
    """Node in the holding/company/store tree."""
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    code = Column(String(8), unique=True, nullable=False, index=True)
    organization_type = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    parent_id = Column(Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    parent = relationship("Organization", remote_side=[id], lazy="joined", join_depth=1)


class UserOrganization(Base):
    """Membership of a user in an organization with an organization-scoped role."""
    __tablename__ = "user_organizations"
    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_user_organization"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    joined_at = Column(DateTime, server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="memberships", foreign_keys=[user_id])
    organization = relationship("Organization", lazy="joined")
    role = relationship("Role", lazy="joined")


class UserOrganizationHistory(Base):
    """Membership audit trail.

    This table is APPEND-ONLY: no UPDATE or DELETE operations should ever
    be performed on it (enforced at application level).
    """
    __tablename__ = "user_organization_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    action = Column(String(50), nullable=False)  # assigned, removed, role_updated, status_changed
    previous_role = Column(String(50), nullable=True)
    new_role = Column(String(50), nullable=True)
    previous_status = Column(Boolean, nullable=True)
    new_status = Column(Boolean, nullable=True)
    action_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    action_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    reason = Column(Text, nullable=True)
