"""Role, Permission and their association tables for RBAC."""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Table,
    CheckConstraint, func,
)
from sqlalchemy.orm import relationship
from orgauth.db.base import Base


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id"), primary_key=True),
)


class Permission(Base):
    """Atomic, uniquely-named capability string."""
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)


class Role(Base):
    """Capability bundle with a hierarchical trust level (0-100)."""
    __tablename__ = "roles"
    __table_args__ = (
        CheckConstraint("level >= 0 AND level <= 100", name="ck_roles_level_range"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    level = Column(Integer, nullable=False, default=0, index=True)
    is_system = Column(Boolean, default=False, nullable=False)
    predefined_name = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    permissions = relationship(
        "Permission", secondary=role_permissions, lazy="selectin", order_by="Permission.name",
    )
    organization_types = relationship(
        "RoleOrganizationType",
        back_populates="role",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def organization_type_names(self) -> list:
        return sorted(t.organization_type for t in self.organization_types)


class RoleOrganizationType(Base):
    """Organization type a role may be assigned in."""
    __tablename__ = "role_organization_types"

    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    organization_type = Column(String(50), primary_key=True)

    role = relationship("Role", back_populates="organization_types")
