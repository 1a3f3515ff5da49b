"""Resubmission ceiling check."""

from typing import Protocol


class RejectionCounter(Protocol):
    async def count_rejected(self, ticket_id: int) -> int: ...


class ResubmissionGuard:
    """Read-side check of how many resubmissions a ticket has left.

    Rejections are counted over the ticket's whole lifetime, across every
    approval pass. The guard never raises; ``resubmit`` consults it.
    """

    def __init__(self, counter: RejectionCounter, ceiling: int):
        self._counter = counter
        self.ceiling = ceiling

    async def rejected_count(self, ticket_id: int) -> int:
        return await self._counter.count_rejected(ticket_id)

    async def remaining(self, ticket_id: int) -> int:
        """Resubmissions still allowed; zero or less blocks resubmission."""
        return self.ceiling - await self.rejected_count(ticket_id)

    async def allows(self, ticket_id: int) -> bool:
        return await self.remaining(ticket_id) > 0
