"""Role and permission definitions.

Users carry role names; each role grants a fixed set of permissions
(capabilities). Workflow authorization asks "does this user hold capability
X" and never inspects role names directly.
"""

from enum import Enum
from typing import FrozenSet, Iterable


class SystemRole(str, Enum):
    """Help-desk roles."""

    SUPER_ADMIN = "Super Admin"
    ADMIN = "Admin"
    DIRECTOR = "Director"
    HEAD_OF_DEPARTMENT = "Head of Department"
    LINE_MANAGER = "Line Manager"
    AGENT = "Agent"
    USER = "User"


class Permission(str, Enum):
    """System permissions.

    Format: <resource>:<action>
    """

    TICKETS_VIEW = "tickets:view"
    TICKETS_CREATE = "tickets:create"
    TICKETS_EDIT = "tickets:edit"
    TICKETS_ASSIGN = "tickets:assign"
    TICKETS_APPROVE = "tickets:approve"
    TICKETS_APPROVE_HOD = "tickets:approve-hod"
    TICKETS_AUTO_APPROVE = "tickets:auto-approve"


SYSTEM_ROLE_PERMISSIONS: dict[SystemRole, FrozenSet[Permission]] = {
    SystemRole.SUPER_ADMIN: frozenset(Permission),
    SystemRole.ADMIN: frozenset([
        Permission.TICKETS_VIEW,
        Permission.TICKETS_CREATE,
        Permission.TICKETS_EDIT,
        Permission.TICKETS_ASSIGN,
        Permission.TICKETS_APPROVE,
        Permission.TICKETS_APPROVE_HOD,
    ]),
    SystemRole.DIRECTOR: frozenset([
        Permission.TICKETS_VIEW,
        Permission.TICKETS_CREATE,
        Permission.TICKETS_EDIT,
        Permission.TICKETS_APPROVE,
        Permission.TICKETS_APPROVE_HOD,
        Permission.TICKETS_AUTO_APPROVE,
    ]),
    SystemRole.HEAD_OF_DEPARTMENT: frozenset([
        Permission.TICKETS_VIEW,
        Permission.TICKETS_CREATE,
        Permission.TICKETS_EDIT,
        Permission.TICKETS_APPROVE,
        Permission.TICKETS_APPROVE_HOD,
    ]),
    SystemRole.LINE_MANAGER: frozenset([
        Permission.TICKETS_VIEW,
        Permission.TICKETS_CREATE,
        Permission.TICKETS_EDIT,
        Permission.TICKETS_APPROVE,
    ]),
    SystemRole.AGENT: frozenset([
        Permission.TICKETS_VIEW,
        Permission.TICKETS_CREATE,
        Permission.TICKETS_EDIT,
    ]),
    SystemRole.USER: frozenset([
        Permission.TICKETS_VIEW,
        Permission.TICKETS_CREATE,
    ]),
}


def permissions_for_roles(roles: Iterable[str]) -> FrozenSet[str]:
    """Resolve the permission strings granted by a set of role names.

    Unknown role names grant nothing.
    """
    granted: set[str] = set()
    for role_name in roles:
        try:
            role = SystemRole(role_name)
        except ValueError:
            continue
        granted.update(p.value for p in SYSTEM_ROLE_PERMISSIONS[role])
    return frozenset(granted)
