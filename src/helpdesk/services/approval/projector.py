"""Projection of workflow outcomes onto ticket status and approval phase."""

from dataclasses import dataclass

from helpdesk.services.approval.schemas import ApprovalPhase, TicketStatus

TERMINAL_STATUSES = frozenset({
    TicketStatus.RESOLVED.value,
    TicketStatus.CLOSED.value,
    TicketStatus.CANCELLED.value,
})


@dataclass(frozen=True)
class StatusProjection:
    """Target ticket state plus the statuses it may be written over."""

    status: TicketStatus
    approval_phase: ApprovalPhase
    expected_from: frozenset[str]


class TicketStatusProjector:
    """Maps workflow outcomes to ticket status writes.

    Each projection names the statuses the ticket must currently be in; the
    workflow applies it as a conditional update so unrelated ticket edits
    made in the meantime are never overwritten.
    """

    @staticmethod
    def is_terminal(status: str) -> bool:
        return status in TERMINAL_STATUSES

    def gates_created(self) -> StatusProjection:
        return StatusProjection(
            status=TicketStatus.OPEN,
            approval_phase=ApprovalPhase.AWAITING_APPROVAL,
            expected_from=frozenset({TicketStatus.OPEN.value}),
        )

    def no_approval_required(self, team_id: int | None) -> StatusProjection:
        return StatusProjection(
            status=TicketStatus.ASSIGNED if team_id else TicketStatus.OPEN,
            approval_phase=ApprovalPhase.NOT_REQUIRED,
            expected_from=frozenset({TicketStatus.OPEN.value}),
        )

    def final_approval(self, team_id: int | None) -> StatusProjection:
        return StatusProjection(
            status=TicketStatus.ASSIGNED if team_id else TicketStatus.OPEN,
            approval_phase=ApprovalPhase.APPROVED,
            expected_from=frozenset({
                TicketStatus.OPEN.value,
                TicketStatus.PENDING.value,
                TicketStatus.ASSIGNED.value,
            }),
        )

    def rejected(self) -> StatusProjection:
        return StatusProjection(
            status=TicketStatus.CANCELLED,
            approval_phase=ApprovalPhase.REJECTED,
            expected_from=frozenset({
                TicketStatus.OPEN.value,
                TicketStatus.ASSIGNED.value,
                TicketStatus.IN_PROGRESS.value,
                TicketStatus.PENDING.value,
            }),
        )

    def resubmitted(self) -> StatusProjection:
        return StatusProjection(
            status=TicketStatus.OPEN,
            approval_phase=ApprovalPhase.AWAITING_APPROVAL,
            expected_from=frozenset({TicketStatus.CANCELLED.value}),
        )
