"""Models package: import all models so metadata.create_all can discover them."""

from orgauth.models.role import Role, Permission, RoleOrganizationType, role_permissions
from orgauth.models.user import User
from orgauth.models.organization import Organization, UserOrganization, UserOrganizationHistory

__all__ = [
    "Role", "Permission", "RoleOrganizationType", "role_permissions",
    "User", "Organization", "UserOrganization", "UserOrganizationHistory",
]
