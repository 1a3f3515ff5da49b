"""Role-based access control definitions."""

from helpdesk.services.rbac.definitions import (
    SYSTEM_ROLE_PERMISSIONS,
    Permission,
    SystemRole,
    permissions_for_roles,
)

__all__ = [
    "Permission",
    "SystemRole",
    "SYSTEM_ROLE_PERMISSIONS",
    "permissions_for_roles",
]
