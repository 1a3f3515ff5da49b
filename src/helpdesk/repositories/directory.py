"""Repository backing the user directory lookups."""

from helpdesk.models import Department, User
from helpdesk.repositories.base import BaseRepository
from helpdesk.services.rbac import permissions_for_roles


class UserRepository(BaseRepository[User]):
    """Repository for users, departments and capability checks.

    Implements the ``UserDirectory`` contract used by the approval workflow.
    Inactive users never resolve as approvers and hold no capabilities.
    """

    model = User

    async def get_active(self, user_id: int | None) -> User | None:
        """Get user if it exists and is active."""
        if user_id is None:
            return None
        user = await self.get_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user

    async def reporting_manager_of(self, user_id: int) -> int | None:
        """Get the active reporting manager of a user.

        @param user_id - User ID
        @returns Manager user ID or None
        """
        user = await self.get_by_id(user_id)
        if user is None:
            return None
        manager = await self.get_active(user.manager_id)
        return manager.id if manager else None

    async def department_head_of(self, department_id: int) -> int | None:
        """Get the active head of a department.

        @param department_id - Department ID
        @returns Head user ID or None
        """
        department = await self.session.get(Department, department_id)
        if department is None:
            return None
        head = await self.get_active(department.head_id)
        return head.id if head else None

    async def department_of(self, user_id: int) -> int | None:
        """Get the department a user belongs to."""
        user = await self.get_by_id(user_id)
        return user.department_id if user else None

    async def capabilities_of(self, user_id: int) -> frozenset[str]:
        """Get every capability an active user holds."""
        user = await self.get_active(user_id)
        if user is None:
            return frozenset()
        return permissions_for_roles(user.roles or [])

    async def has_capability(self, user_id: int, capability: str) -> bool:
        """Check whether an active user holds a capability.

        @param user_id - User ID
        @param capability - Permission string, e.g. tickets:approve
        @returns True if granted by any of the user's roles
        """
        return capability in await self.capabilities_of(user_id)

    async def department_exists(self, department_id: int) -> bool:
        """Check whether a department (team) exists."""
        return await self.session.get(Department, department_id) is not None
