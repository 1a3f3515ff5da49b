"""Collaborator contracts consumed by the approval workflow."""

from typing import Any, Collection, Protocol

from helpdesk.models import Ticket
from helpdesk.services.approval.schemas import CategoryApprovalPolicy


class TicketStore(Protocol):
    """Ticket persistence used by the workflow.

    Status and assigned team change only through ``transition``.
    """

    async def find(self, ticket_id: int) -> Ticket | None: ...

    async def find_for_update(self, ticket_id: int) -> Ticket | None: ...

    async def transition(
        self,
        ticket_id: int,
        *,
        expected_from: Collection[str],
        status: str,
        **values: Any,
    ) -> bool: ...


class UserDirectory(Protocol):
    """Organisation lookups and capability checks."""

    async def reporting_manager_of(self, user_id: int) -> int | None: ...

    async def department_head_of(self, department_id: int) -> int | None: ...

    async def has_capability(self, user_id: int, capability: str) -> bool: ...

    async def department_of(self, user_id: int) -> int | None: ...

    async def department_exists(self, department_id: int) -> bool: ...


class CategoryPolicyLookup(Protocol):
    """Category approval configuration."""

    async def policy_for(self, category_id: int | None) -> CategoryApprovalPolicy | None: ...


class NotificationSink(Protocol):
    """Fire-and-forget notification delivery."""

    async def notify(
        self, event_type: str, recipient_id: int, payload: dict[str, Any]
    ) -> None: ...
