"""Approval policy: which gates a ticket must clear.

The policy is a pure decision over a ticket snapshot and its category
configuration. It never touches the database; approver lookup is described
by an ``ApproverResolver`` and carried out by the workflow service.
"""

import logging
from decimal import Decimal
from typing import Iterable

from helpdesk.services.approval.schemas import (
    ApprovalLevel,
    ApproverResolver,
    CategoryApprovalPolicy,
    GateSpec,
    ResolverKind,
    TicketSnapshot,
)

logger = logging.getLogger(__name__)


class ApprovalPolicy:
    """Decides the ordered approval gates for a ticket.

    Rules:
    - A cost at or above the category's HOD threshold always requires
      approval, even when the category itself does not
    - Otherwise the category's ``requires_approval`` flag decides
    - Tickets without a category require approval unless the requester
      holds the auto-approve capability
    - Head of Department approval follows Line Manager approval when the
      cost threshold is reached, when the category requires it and sets no
      threshold, or when the priority is configured to always need it
    """

    def __init__(self, hod_priorities: Iterable[str] = ()):
        """Initialize policy.

        @param hod_priorities - Ticket priorities that always need HOD approval
        """
        self.hod_priorities = frozenset(hod_priorities)

    @staticmethod
    def _cost_reaches_threshold(
        ticket: TicketSnapshot,
        category: CategoryApprovalPolicy | None,
    ) -> bool:
        if category is None or category.hod_approval_threshold is None:
            return False
        cost = ticket.estimated_cost if ticket.estimated_cost is not None else Decimal(0)
        return cost >= category.hod_approval_threshold

    def requires_approval(
        self,
        ticket: TicketSnapshot,
        category: CategoryApprovalPolicy | None,
    ) -> bool:
        """Check whether the ticket needs any approval gate.

        @param ticket - Ticket snapshot
        @param category - Category configuration, None if uncategorised
        @returns True if at least the Line Manager gate is required
        """
        if self._cost_reaches_threshold(ticket, category):
            logger.debug(
                f"Approval required for ticket {ticket.ticket_id}: cost "
                f"{ticket.estimated_cost} reaches threshold "
                f"{category.hod_approval_threshold}"
            )
            return True

        if category is not None:
            return category.requires_approval

        if ticket.requester_can_auto_approve:
            logger.debug(
                f"Auto-approval granted for ticket {ticket.ticket_id} "
                f"(requester {ticket.requester_id})"
            )
            return False

        return True

    def requires_hod_approval(
        self,
        ticket: TicketSnapshot,
        category: CategoryApprovalPolicy | None,
    ) -> bool:
        """Check whether the Head of Department gate is required.

        Only meaningful when ``requires_approval`` is True.
        """
        if ticket.priority in self.hod_priorities:
            return True
        if self._cost_reaches_threshold(ticket, category):
            return True
        return bool(
            category is not None
            and category.requires_hod_approval
            and category.hod_approval_threshold is None
        )

    def required_gates(
        self,
        ticket: TicketSnapshot,
        category: CategoryApprovalPolicy | None,
    ) -> list[GateSpec]:
        """Get the ordered gates the ticket must clear.

        @param ticket - Ticket snapshot
        @param category - Category configuration, None if uncategorised
        @returns [] when no approval is needed, else LM and optionally HOD
        """
        if not self.requires_approval(ticket, category):
            return []

        gates = [
            GateSpec(
                level=ApprovalLevel.LINE_MANAGER,
                sequence=1,
                resolver=ApproverResolver(
                    kind=ResolverKind.REPORTING_MANAGER,
                    user_id=ticket.requester_id,
                ),
            )
        ]

        if self.requires_hod_approval(ticket, category):
            gates.append(
                GateSpec(
                    level=ApprovalLevel.HEAD_OF_DEPARTMENT,
                    sequence=2,
                    resolver=ApproverResolver(
                        kind=ResolverKind.DEPARTMENT_HEAD,
                        department_ids=self._hod_departments(ticket, category),
                    ),
                )
            )

        return gates

    @staticmethod
    def _hod_departments(
        ticket: TicketSnapshot,
        category: CategoryApprovalPolicy | None,
    ) -> tuple[int, ...]:
        """Departments whose head may approve, most specific first."""
        candidates = [
            ticket.assigned_team_id,
            category.default_team_id if category else None,
            ticket.requester_department_id,
        ]
        ordered: list[int] = []
        for department_id in candidates:
            if department_id is not None and department_id not in ordered:
                ordered.append(department_id)
        return tuple(ordered)
