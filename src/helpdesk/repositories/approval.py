"""Repository for ticket approval records."""

from typing import Any, Collection, Sequence

from sqlalchemy import and_, desc, func, or_, select, update

from helpdesk.models import Ticket, TicketApproval
from helpdesk.repositories.base import BaseRepository


class ApprovalRecordRepository(BaseRepository[TicketApproval]):
    """Repository for TicketApproval database operations.

    Handles approval gate queries including:
    - The current (pending) gate of a ticket
    - Rejection counting for resubmission limits
    - Approver inboxes
    - Atomic pending -> decided transitions
    """

    model = TicketApproval

    async def get_by_ticket(self, ticket_id: int) -> Sequence[TicketApproval]:
        """Get all approval records for a ticket in workflow order.

        @param ticket_id - Ticket ID
        @returns Records ordered by pass then sequence
        """
        stmt = (
            select(self.model)
            .where(self.model.ticket_id == ticket_id)
            .order_by(self.model.approval_pass, self.model.sequence, self.model.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_pending_for_ticket(self, ticket_id: int) -> TicketApproval | None:
        """Get the ticket's current pending gate.

        @param ticket_id - Ticket ID
        @returns Pending record or None
        """
        stmt = (
            select(self.model)
            .where(
                and_(
                    self.model.ticket_id == ticket_id,
                    self.model.status == "pending",
                )
            )
            .order_by(self.model.sequence)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_latest_rejected(self, ticket_id: int) -> TicketApproval | None:
        """Get the most recently rejected record of a ticket.

        @param ticket_id - Ticket ID
        @returns Rejected record or None
        """
        stmt = (
            select(self.model)
            .where(
                and_(
                    self.model.ticket_id == ticket_id,
                    self.model.status == "rejected",
                )
            )
            .order_by(desc(self.model.rejected_at), desc(self.model.id))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def count_rejected(self, ticket_id: int) -> int:
        """Count rejections over the ticket's lifetime."""
        return await self.count(ticket_id=ticket_id, status="rejected")

    async def get_last_pass(self, ticket_id: int) -> int:
        """Get the highest approval pass number used so far (0 if none)."""
        stmt = select(func.max(self.model.approval_pass)).where(
            self.model.ticket_id == ticket_id
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def decide(self, record_id: int, status: str, **values: Any) -> bool:
        """Atomically move a pending record to a decided status.

        The update only applies while the record is still pending, so of two
        concurrent deciders exactly one wins.

        @param record_id - Record ID
        @param status - approved or rejected
        @param values - Decision columns (comments, timestamps, ...)
        @returns True if this call decided the record
        """
        stmt = (
            update(self.model)
            .where(
                and_(
                    self.model.id == record_id,
                    self.model.status == "pending",
                )
            )
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        decided = result.rowcount == 1
        if decided:
            await self.session.get(self.model, record_id, populate_existing=True)
        return decided

    async def get_pending_for_approver(
        self,
        user_id: int,
        *,
        capabilities: Collection[str] = (),
        excluded_ticket_statuses: Collection[str] = (),
        skip: int = 0,
        limit: int = 100,
    ) -> Sequence[TicketApproval]:
        """Get pending gates a user can act on.

        Includes gates naming the user and unassigned gates whose capability
        the user holds. Gates of tickets in an excluded status are skipped.

        @param user_id - Approver user ID
        @param capabilities - Capabilities the user holds
        @param excluded_ticket_statuses - Ticket statuses to leave out
        @param skip - Pagination offset
        @param limit - Maximum results
        @returns Pending records, newest first
        """
        approver_clause = self.model.approver_id == user_id
        if capabilities:
            approver_clause = or_(
                approver_clause,
                and_(
                    self.model.approver_id.is_(None),
                    self.model.approver_capability.in_(list(capabilities)),
                ),
            )

        stmt = (
            select(self.model)
            .join(Ticket, Ticket.id == self.model.ticket_id)
            .where(and_(self.model.status == "pending", approver_clause))
        )
        if excluded_ticket_statuses:
            stmt = stmt.where(Ticket.status.notin_(list(excluded_ticket_statuses)))
        stmt = (
            stmt.order_by(desc(self.model.created_at), desc(self.model.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
