"""Seed the permission catalogue and the predefined roles."""

import logging

from sqlalchemy.orm import Session

from orgauth.core import constants as c
from orgauth.models.role import Permission, Role, RoleOrganizationType

logger = logging.getLogger("orgauth.seeds")

PERMISSIONS = [
    ("users:read", "View users"),
    ("users:create", "Create users"),
    ("users:update", "Update users and their roles"),
    ("users:delete", "Delete users"),
    ("roles:read", "View roles"),
    ("roles:create", "Create custom roles"),
    ("roles:update", "Update roles and their permissions"),
    ("roles:delete", "Delete custom roles"),
    ("permissions:read", "View permissions"),
    ("permissions:manage", "Create, rename and delete permissions"),
    ("organizations:read", "View organizations"),
    ("organizations:create", "Create organizations"),
    ("organizations:update", "Update organizations"),
    ("organizations:delete", "Delete organizations"),
    ("organizations:manage_members", "Assign and remove organization members"),
    ("history:read", "View membership history"),
]

_READ_ALL = ["users:read", "roles:read", "organizations:read", "history:read"]
_MANAGE_ORGS = [
    "organizations:create", "organizations:update", "organizations:manage_members",
    "users:create", "users:update",
]

ROLES = [
    {
        "name": c.SUPER_ADMIN_ROLE_NAME,
        "predefined_name": c.SUPER_ADMIN_ROLE_NAME,
        "level": c.ROLE_LEVEL_SUPER_ADMIN,
        "description": "Unrestricted system access",
        "organization_types": list(c.ROLE_ORGANIZATION_TYPES),
        # Authority is structural; no permission rows are attached.
        "permissions": [],
    },
    {
        "name": "platform_admin",
        "predefined_name": "platform_admin",
        "level": c.ROLE_LEVEL_PLATFORM_ADMIN,
        "description": "Platform Administrator - system-wide operations",
        "organization_types": [c.ORG_TYPE_PLATFORM],
        "permissions": [name for name, _ in PERMISSIONS],
    },
    {
        "name": "holding_admin",
        "predefined_name": "holding_admin",
        "level": c.ROLE_LEVEL_HOLDING_ADMIN,
        "description": "Holding Administrator - manage holdings and their subsidiaries",
        "organization_types": [c.ORG_TYPE_HOLDING],
        "permissions": _READ_ALL + _MANAGE_ORGS + ["roles:create", "roles:update"],
    },
    {
        "name": "company_admin",
        "predefined_name": "company_admin",
        "level": c.ROLE_LEVEL_COMPANY_ADMIN,
        "description": "Company Administrator - manage company operations and stores",
        "organization_types": [c.ORG_TYPE_COMPANY],
        "permissions": _READ_ALL + _MANAGE_ORGS,
    },
    {
        "name": "store_admin",
        "predefined_name": "store_admin",
        "level": c.ROLE_LEVEL_STORE_ADMIN,
        "description": "Store Administrator - manage a single store and its staff",
        "organization_types": [c.ORG_TYPE_STORE],
        "permissions": _READ_ALL + ["organizations:manage_members"],
    },
    {
        "name": c.DEFAULT_ROLE_NAME,
        "predefined_name": None,
        "level": c.ROLE_LEVEL_STORE_STAFF,
        "description": "Default role for regular users",
        "organization_types": list(c.ORGANIZATION_TYPES),
        "permissions": ["organizations:read"],
    },
]


def seed_permissions(db: Session) -> None:
    """Insert catalogue permissions that don't already exist."""
    existing = {name for (name,) in db.query(Permission.name).all()}
    created = 0
    for name, description in PERMISSIONS:
        if name not in existing:
            db.add(Permission(name=name, description=description))
            created += 1
    db.commit()
    logger.info("Seeded %d permission(s)", created)


def seed_roles(db: Session) -> None:
    """Insert predefined system roles if they don't already exist."""
    by_name = {p.name: p for p in db.query(Permission).all()}
    created = 0
    for data in ROLES:
        if db.query(Role.id).filter(Role.name == data["name"]).first() is not None:
            continue
        role = Role(
            name=data["name"],
            predefined_name=data["predefined_name"],
            level=data["level"],
            description=data["description"],
            is_system=True,
            is_active=True,
        )
        role.permissions = [by_name[name] for name in data["permissions"] if name in by_name]
        role.organization_types = [
            RoleOrganizationType(organization_type=t) for t in data["organization_types"]
        ]
        db.add(role)
        created += 1
    db.commit()
    logger.info("Seeded %d role(s)", created)


def seed_rbac(db: Session) -> None:
    seed_permissions(db)
    seed_roles(db)
