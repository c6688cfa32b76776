"""Role levels, organization types and user-facing messages."""

SUPER_ADMIN_ROLE_NAME = "super_admin"
DEFAULT_ROLE_NAME = "user"

# Role levels
ROLE_LEVEL_SUPER_ADMIN = 100
ROLE_LEVEL_PLATFORM_ADMIN = 99
ROLE_LEVEL_PLATFORM_MANAGER = 76
ROLE_LEVEL_HOLDING_ADMIN = 75
ROLE_LEVEL_COMPANY_ADMIN = 50
ROLE_LEVEL_STORE_ADMIN = 25
ROLE_LEVEL_STORE_STAFF = 10
ROLE_LEVEL_NONE = 0

# Organization types
ORG_TYPE_PLATFORM = "platform"
ORG_TYPE_HOLDING = "holding"
ORG_TYPE_COMPANY = "company"
ORG_TYPE_STORE = "store"

# Types a stored organization may have. "platform" is the implicit root and
# only appears as a role applicability tag.
ORGANIZATION_TYPES = (ORG_TYPE_HOLDING, ORG_TYPE_COMPANY, ORG_TYPE_STORE)
ROLE_ORGANIZATION_TYPES = (ORG_TYPE_PLATFORM,) + ORGANIZATION_TYPES

# Auth providers
AUTH_PROVIDER_LOCAL = "local"
AUTH_PROVIDER_GOOGLE = "google"

# Membership history actions
HISTORY_ASSIGNED = "assigned"
HISTORY_REMOVED = "removed"
HISTORY_ROLE_UPDATED = "role_updated"
HISTORY_STATUS_CHANGED = "status_changed"
HISTORY_ACTIONS = (
    HISTORY_ASSIGNED, HISTORY_REMOVED, HISTORY_ROLE_UPDATED, HISTORY_STATUS_CHANGED,
)

# Predefined role templates offered when creating custom roles
PREDEFINED_ROLE_OPTIONS = [
    {
        "name": "platform_admin",
        "level": ROLE_LEVEL_PLATFORM_ADMIN,
        "description": "Platform Administrator - system-wide operations",
    },
    {
        "name": "holding_admin",
        "level": ROLE_LEVEL_HOLDING_ADMIN,
        "description": "Holding Administrator - manage holdings and their subsidiaries",
    },
    {
        "name": "company_admin",
        "level": ROLE_LEVEL_COMPANY_ADMIN,
        "description": "Company Administrator - manage company operations and stores",
    },
    {
        "name": "store_admin",
        "level": ROLE_LEVEL_STORE_ADMIN,
        "description": "Store Administrator - manage a single store and its staff",
    },
]

# Messages
MSG_INVALID_CREDENTIALS = "invalid credentials"
MSG_INVALID_TOKEN = "invalid or expired token"
MSG_REFRESH_TOKEN_REUSED = "refresh token not found or already used"
MSG_CANNOT_CHANGE_OWN_ROLE = "Users cannot change their own role"
MSG_INSUFFICIENT_AUTHORITY = "Insufficient authority to assign this role level"
MSG_ONLY_SUPER_ADMIN_CAN_MODIFY = "Only super administrators can modify super administrator accounts"
MSG_ONLY_SUPER_ADMIN_CAN_ASSIGN = "Only super administrators can assign super administrator role"
MSG_CURRENT_USER_HAS_NO_ROLE = "Current user has no role assigned"
MSG_ONLY_ONE_SUPER_ADMIN = "Only one super administrator (level 100) is allowed in the system"
MSG_ORGANIZATION_ACCESS_DENIED = "Access denied to the specified organization"
MSG_INSUFFICIENT_PERMISSIONS = "insufficient permissions"
MSG_ROOT_ORGANIZATION_DENIED = "Only platform-level users can manage top-level organizations"
