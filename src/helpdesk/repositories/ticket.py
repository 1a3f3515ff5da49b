"""Repositories for tickets, categories and ticket history."""

from typing import Any, Collection, Sequence

from sqlalchemy import desc, select, update

from helpdesk.models import Ticket, TicketCategory, TicketHistory
from helpdesk.repositories.base import BaseRepository
from helpdesk.services.approval.schemas import CategoryApprovalPolicy


class TicketRepository(BaseRepository[Ticket]):
    """Repository for Ticket database operations.

    Status changes made on behalf of the approval workflow go through
    ``transition``, a conditional update that only applies while the ticket
    is still in one of the expected statuses.
    """

    model = Ticket

    async def find(self, ticket_id: int) -> Ticket | None:
        """Get ticket by ID."""
        return await self.get_by_id(ticket_id)

    async def find_for_update(self, ticket_id: int) -> Ticket | None:
        """Get ticket by ID, locking the row where the database supports it.

        @param ticket_id - Ticket ID
        @returns Ticket or None
        """
        stmt = (
            select(self.model)
            .where(self.model.id == ticket_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def transition(
        self,
        ticket_id: int,
        *,
        expected_from: Collection[str],
        status: str,
        **values: Any,
    ) -> bool:
        """Move ticket to a new status if it is still in an expected one.

        @param ticket_id - Ticket ID
        @param expected_from - Statuses the ticket must currently have
        @param status - New status
        @param values - Other columns to write in the same statement
        @returns True if the row was updated
        """
        stmt = (
            update(self.model)
            .where(
                self.model.id == ticket_id,
                self.model.status.in_(list(expected_from)),
            )
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        applied = result.rowcount == 1
        if applied:
            await self.session.get(self.model, ticket_id, populate_existing=True)
        return applied


class CategoryRepository(BaseRepository[TicketCategory]):
    """Repository for TicketCategory lookups."""

    model = TicketCategory

    async def policy_for(self, category_id: int | None) -> CategoryApprovalPolicy | None:
        """Get approval configuration of a category.

        @param category_id - Category ID (None for uncategorised tickets)
        @returns Category policy or None if no such category
        """
        if category_id is None:
            return None
        category = await self.get_by_id(category_id)
        if category is None:
            return None
        return CategoryApprovalPolicy(
            category_id=category.id,
            requires_approval=category.requires_approval,
            requires_hod_approval=category.requires_hod_approval,
            hod_approval_threshold=category.hod_approval_threshold,
            default_team_id=category.default_team_id,
        )


class TicketHistoryRepository(BaseRepository[TicketHistory]):
    """Repository for the append-only ticket history."""

    model = TicketHistory

    async def record(
        self,
        ticket_id: int,
        action: str,
        *,
        user_id: int | None = None,
        field_name: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        description: str | None = None,
    ) -> TicketHistory:
        """Append a history line.

        @param ticket_id - Ticket ID
        @param action - Action name (approved, rejected, routed, ...)
        @param user_id - Acting user, None for system actions
        @returns Created history entry
        """
        return await self.create({
            "ticket_id": ticket_id,
            "user_id": user_id,
            "action": action,
            "field_name": field_name,
            "old_value": None if old_value is None else str(old_value),
            "new_value": None if new_value is None else str(new_value),
            "description": description,
        })

    async def get_by_ticket(self, ticket_id: int) -> Sequence[TicketHistory]:
        """Get history for a ticket, newest first."""
        stmt = (
            select(self.model)
            .where(self.model.ticket_id == ticket_id)
            .order_by(desc(self.model.created_at), desc(self.model.id))
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
