"""Approval workflow service with database persistence.

Drives a ticket through its Line Manager and Head of Department gates:
- Gate creation on ticket creation and resubmission
- Approve / reject decisions with authorization checks
- Routing to a team once the last gate is approved
- Resubmission of rejected tickets up to a configurable ceiling
- Ticket history lines and approver / requester notifications

Every operation runs in one database transaction. Notifications go out
after commit; delivery failures are logged and never undo a decision.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.config import Settings, get_settings
from helpdesk.infrastructure.database.session import AsyncSessionLocal
from helpdesk.models import Ticket, TicketApproval
from helpdesk.repositories import (
    ApprovalRecordRepository,
    CategoryRepository,
    TicketHistoryRepository,
    TicketRepository,
    UserRepository,
)
from helpdesk.services.approval.exceptions import (
    AlreadyDecidedError,
    ApprovalValidationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ResubmissionLimitExceeded,
)
from helpdesk.services.approval.guard import ResubmissionGuard
from helpdesk.services.approval.interfaces import (
    CategoryPolicyLookup,
    NotificationSink,
    TicketStore,
    UserDirectory,
)
from helpdesk.services.approval.notifications import build_notification_sink
from helpdesk.services.approval.policy import ApprovalPolicy
from helpdesk.services.approval.projector import (
    TERMINAL_STATUSES,
    StatusProjection,
    TicketStatusProjector,
)
from helpdesk.services.approval.schemas import (
    AnyWithCapability,
    ApprovalLevel,
    ApprovalRecord,
    ApprovalStatus,
    Approver,
    CategoryApprovalPolicy,
    GateSpec,
    NotificationEvent,
    ResolverKind,
    ResubmissionStatus,
    SpecificApprover,
    TicketStatus,
    TicketSummary,
    TicketSnapshot,
)
from helpdesk.services.rbac import Permission

logger = logging.getLogger(__name__)


@dataclass
class _Repositories:
    """Repositories sharing one session (one transaction)."""

    session: AsyncSession
    tickets: TicketStore = field(init=False)
    categories: CategoryPolicyLookup = field(init=False)
    history: TicketHistoryRepository = field(init=False)
    users: UserDirectory = field(init=False)
    approvals: ApprovalRecordRepository = field(init=False)

    def __post_init__(self) -> None:
        self.tickets = TicketRepository(self.session)
        self.categories = CategoryRepository(self.session)
        self.history = TicketHistoryRepository(self.session)
        self.users = UserRepository(self.session)
        self.approvals = ApprovalRecordRepository(self.session)


@dataclass(frozen=True)
class _Notification:
    event_type: NotificationEvent
    recipient_id: int
    payload: dict[str, Any]


class ApprovalWorkflowService:
    """Sole mutator of ticket approval records.

    Gates are created lazily: only the current gate exists as a record, the
    next one is created when the current one is approved. The gate list is
    recomputed from the policy each time it is needed.

    Uses Repository pattern for database operations.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] | None = None,
        notifier: NotificationSink | None = None,
        settings: Settings | None = None,
        policy: ApprovalPolicy | None = None,
        projector: TicketStatusProjector | None = None,
    ):
        """Initialize approval workflow service.

        @param session_factory - Optional factory for creating database sessions
        @param notifier - Notification sink (built from settings if None)
        @param settings - Settings (application settings if None)
        @param policy - Approval policy (built from settings if None)
        @param projector - Ticket status projector
        """
        self.settings = settings or get_settings()
        self._session_factory = session_factory or AsyncSessionLocal
        self.notifier = notifier or build_notification_sink(self.settings)
        self.policy = policy or ApprovalPolicy(self.settings.approval_hod_priorities)
        self.projector = projector or TicketStatusProjector()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def initiate(
        self, ticket_id: int, actor_id: int | None = None
    ) -> ApprovalRecord | None:
        """Start the approval workflow of a newly created ticket.

        Calling it again while a gate is pending returns that gate.

        @param ticket_id - Ticket ID
        @param actor_id - User who created the ticket, for history
        @returns First gate, or None when no approval is required
        """
        outbox: list[_Notification] = []
        async with self._session_factory() as session:
            repos = _Repositories(session)
            record = await self._initiate_in_session(repos, ticket_id, actor_id, outbox)
            await session.commit()

        await self._dispatch(outbox)
        return ApprovalRecord.model_validate(record) if record else None

    async def approve(
        self,
        record_id: int,
        acting_user_id: int,
        comments: str | None = None,
        routed_to_team_id: int | None = None,
    ) -> ApprovalRecord:
        """Approve a pending gate.

        On the last gate the ticket is routed to ``routed_to_team_id`` (else
        the category default team) and becomes actionable. Otherwise the
        next gate is created.

        @param record_id - Approval record ID
        @param acting_user_id - User approving
        @param comments - Optional comments
        @param routed_to_team_id - Team to route the ticket to; must exist
        @returns Updated record
        """
        outbox: list[_Notification] = []
        async with self._session_factory() as session:
            repos = _Repositories(session)
            record, ticket = await self._load_decidable(repos, record_id, acting_user_id, "approve")
            if routed_to_team_id is not None and not await repos.users.department_exists(
                routed_to_team_id
            ):
                raise ApprovalValidationError(
                    "routed_to_team_id", f"Team {routed_to_team_id} does not exist"
                )

            decided = await repos.approvals.decide(
                record.id,
                ApprovalStatus.APPROVED.value,
                decided_by_id=acting_user_id,
                comments=comments,
                routed_to_team_id=routed_to_team_id,
                approved_at=datetime.now(timezone.utc),
            )
            if not decided:
                await session.refresh(record)
                raise AlreadyDecidedError(record.id, record.status)

            await repos.history.record(
                ticket.id,
                "approved",
                user_id=acting_user_id,
                field_name="approval_level",
                old_value=ApprovalStatus.PENDING.value,
                new_value=record.approval_level,
                description=comments or f"{_level_label(record.approval_level)} approval granted",
            )

            category = await repos.categories.policy_for(ticket.category_id)
            snapshot = await self._snapshot(repos, ticket)
            gates = self.policy.required_gates(snapshot, category)
            next_gate = next((g for g in gates if g.sequence == record.sequence + 1), None)

            if next_gate is not None:
                await self._create_gate(
                    repos, ticket, next_gate, record.approval_pass, acting_user_id, outbox
                )
            else:
                await self._finalize(repos, ticket, record, category, acting_user_id)

            outbox.append(_Notification(
                NotificationEvent.APPROVAL_APPROVED,
                ticket.requester_id,
                {
                    "ticket_id": ticket.id,
                    "ticket_number": ticket.ticket_number,
                    "approval_id": record.id,
                    "approval_level": record.approval_level,
                    "approved_by": acting_user_id,
                    "comments": comments,
                    "final": next_gate is None,
                },
            ))
            await session.commit()

        logger.info(
            f"Approval {record.id} ({record.approval_level}) approved by user "
            f"{acting_user_id} for ticket {ticket.id}"
        )
        await self._dispatch(outbox)
        return ApprovalRecord.model_validate(record)

    async def reject(
        self,
        record_id: int,
        acting_user_id: int,
        comments: str | None,
    ) -> ApprovalRecord:
        """Reject a pending gate and cancel the ticket.

        @param record_id - Approval record ID
        @param acting_user_id - User rejecting
        @param comments - Rejection reason (required)
        @returns Updated record
        """
        if comments is None or not comments.strip():
            raise ApprovalValidationError(
                "comments", "Comments are required when rejecting an approval"
            )
        reason = comments.strip()

        outbox: list[_Notification] = []
        async with self._session_factory() as session:
            repos = _Repositories(session)
            record, ticket = await self._load_decidable(repos, record_id, acting_user_id, "reject")

            decided = await repos.approvals.decide(
                record.id,
                ApprovalStatus.REJECTED.value,
                decided_by_id=acting_user_id,
                comments=reason,
                rejected_at=datetime.now(timezone.utc),
            )
            if not decided:
                await session.refresh(record)
                raise AlreadyDecidedError(record.id, record.status)

            previous_status = ticket.status
            await self._apply_projection(repos, ticket, self.projector.rejected())
            await repos.history.record(
                ticket.id,
                "rejected",
                user_id=acting_user_id,
                field_name="status",
                old_value=previous_status,
                new_value=ticket.status,
                description=(
                    f"{_level_label(record.approval_level)} approval rejected: {reason}"
                ),
            )

            outbox.append(_Notification(
                NotificationEvent.APPROVAL_REJECTED,
                ticket.requester_id,
                {
                    "ticket_id": ticket.id,
                    "ticket_number": ticket.ticket_number,
                    "approval_id": record.id,
                    "approval_level": record.approval_level,
                    "rejected_by": acting_user_id,
                    "reason": reason,
                },
            ))
            await session.commit()

        logger.info(
            f"Approval {record.id} ({record.approval_level}) rejected by user "
            f"{acting_user_id}; ticket {ticket.id} cancelled"
        )
        await self._dispatch(outbox)
        return ApprovalRecord.model_validate(record)

    async def resubmit(self, ticket_id: int, acting_user_id: int) -> TicketSummary:
        """Reopen a rejected ticket and start a new approval pass.

        @param ticket_id - Ticket ID
        @param acting_user_id - User resubmitting
        @returns Ticket after resubmission
        @raises ResubmissionLimitExceeded when the ceiling is reached
        """
        outbox: list[_Notification] = []
        async with self._session_factory() as session:
            repos = _Repositories(session)
            ticket = await repos.tickets.find_for_update(ticket_id)
            if ticket is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")

            if ticket.status != TicketStatus.CANCELLED.value:
                raise InvalidStateError(
                    f"Only cancelled tickets can be resubmitted; ticket "
                    f"{ticket.ticket_number} is {ticket.status}",
                    current_status=ticket.status,
                )
            if await repos.approvals.get_latest_rejected(ticket.id) is None:
                raise InvalidStateError(
                    f"Ticket {ticket.ticket_number} has not been rejected and "
                    f"cannot be resubmitted",
                    current_status=ticket.status,
                )

            guard = ResubmissionGuard(repos.approvals, self.settings.approval_resubmission_ceiling)
            rejected_count = await guard.rejected_count(ticket.id)
            if not await guard.allows(ticket.id):
                logger.warning(
                    f"Resubmission of ticket {ticket.id} refused: rejected "
                    f"{rejected_count} of {guard.ceiling} times"
                )
                raise ResubmissionLimitExceeded(ticket.id, rejected_count, guard.ceiling)

            await self._apply_projection(repos, ticket, self.projector.resubmitted())
            await repos.history.record(
                ticket.id,
                "resubmitted",
                user_id=acting_user_id,
                field_name="status",
                old_value=TicketStatus.CANCELLED.value,
                new_value=TicketStatus.OPEN.value,
                description=(
                    f"Ticket resubmitted for approval after rejection "
                    f"(Attempt {rejected_count} of {guard.ceiling})"
                ),
            )
            await self._initiate_in_session(repos, ticket.id, acting_user_id, outbox)
            await session.commit()

        logger.info(
            f"Ticket {ticket.id} resubmitted by user {acting_user_id} "
            f"(rejections: {rejected_count}/{self.settings.approval_resubmission_ceiling})"
        )
        await self._dispatch(outbox)
        return TicketSummary.model_validate(ticket)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def pending_approvals_for(
        self, user_id: int, skip: int = 0, limit: int = 100
    ) -> list[ApprovalRecord]:
        """Get gates waiting on a user.

        Includes unassigned gates whose capability the user holds. Tickets
        already resolved, closed or cancelled are left out.

        @param user_id - Approver user ID
        @returns Pending records, newest first
        """
        async with self._session_factory() as session:
            users = UserRepository(session)
            approvals = ApprovalRecordRepository(session)
            capabilities = await users.capabilities_of(user_id)
            records = await approvals.get_pending_for_approver(
                user_id,
                capabilities=capabilities,
                excluded_ticket_statuses=TERMINAL_STATUSES,
                skip=skip,
                limit=limit,
            )
            return [ApprovalRecord.model_validate(r) for r in records]

    async def current_approval(self, ticket_id: int) -> ApprovalRecord | None:
        """Get the ticket's pending gate, if any."""
        async with self._session_factory() as session:
            if await TicketRepository(session).find(ticket_id) is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")
            record = await ApprovalRecordRepository(session).get_pending_for_ticket(ticket_id)
            return ApprovalRecord.model_validate(record) if record else None

    async def rejected_approval(self, ticket_id: int) -> ApprovalRecord | None:
        """Get the rejection that cancelled the ticket.

        @param ticket_id - Ticket ID
        @returns Latest rejected record while the ticket is cancelled, else None
        """
        async with self._session_factory() as session:
            ticket = await TicketRepository(session).find(ticket_id)
            if ticket is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")
            if ticket.status != TicketStatus.CANCELLED.value:
                return None
            record = await ApprovalRecordRepository(session).get_latest_rejected(ticket_id)
            return ApprovalRecord.model_validate(record) if record else None

    async def approval_history(self, ticket_id: int) -> list[ApprovalRecord]:
        """Get every gate of a ticket, ordered by pass and sequence."""
        async with self._session_factory() as session:
            if await TicketRepository(session).find(ticket_id) is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")
            records = await ApprovalRecordRepository(session).get_by_ticket(ticket_id)
            return [ApprovalRecord.model_validate(r) for r in records]

    async def resubmission_status(self, ticket_id: int) -> ResubmissionStatus:
        """Get how many resubmissions a ticket has left."""
        async with self._session_factory() as session:
            if await TicketRepository(session).find(ticket_id) is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")
            guard = ResubmissionGuard(
                ApprovalRecordRepository(session),
                self.settings.approval_resubmission_ceiling,
            )
            rejected_count = await guard.rejected_count(ticket_id)
            return ResubmissionStatus(
                ticket_id=ticket_id,
                rejected_count=rejected_count,
                ceiling=guard.ceiling,
                remaining=guard.ceiling - rejected_count,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _initiate_in_session(
        self,
        repos: _Repositories,
        ticket_id: int,
        actor_id: int | None,
        outbox: list[_Notification],
    ) -> TicketApproval | None:
        ticket = await repos.tickets.find_for_update(ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")

        pending = await repos.approvals.get_pending_for_ticket(ticket.id)
        if pending is not None:
            logger.warning(
                f"Ticket {ticket.id} already has pending approval {pending.id}; "
                f"not creating another"
            )
            return pending

        category = await repos.categories.policy_for(ticket.category_id)
        snapshot = await self._snapshot(repos, ticket)
        gates = self.policy.required_gates(snapshot, category)

        if not gates:
            team_id = _default_team(ticket, category)
            await self._apply_projection(
                repos,
                ticket,
                self.projector.no_approval_required(team_id),
                assigned_team_id=team_id,
            )
            if team_id is not None:
                await repos.history.record(
                    ticket.id,
                    "routed",
                    user_id=actor_id,
                    field_name="assigned_team_id",
                    new_value=team_id,
                    description="No approval required; routed to default team",
                )
            logger.info(f"Ticket {ticket.id} requires no approval")
            return None

        approval_pass = await repos.approvals.get_last_pass(ticket.id) + 1
        record = await self._create_gate(repos, ticket, gates[0], approval_pass, actor_id, outbox)
        await self._apply_projection(repos, ticket, self.projector.gates_created())
        logger.info(
            f"Approval workflow started for ticket {ticket.id}: pass {approval_pass}, "
            f"{len(gates)} gate(s)"
        )
        return record

    async def _load_decidable(
        self,
        repos: _Repositories,
        record_id: int,
        acting_user_id: int,
        action: str,
    ) -> tuple[TicketApproval, Ticket]:
        """Load a record and its ticket, enforcing decision preconditions."""
        record = await repos.approvals.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"Approval {record_id} not found")

        ticket = await repos.tickets.find_for_update(record.ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {record.ticket_id} not found")

        if self.projector.is_terminal(ticket.status):
            raise InvalidStateError(
                f"Cannot {action} approval {record.id}: ticket "
                f"{ticket.ticket_number} is {ticket.status}",
                current_status=ticket.status,
            )

        if record.status != ApprovalStatus.PENDING.value:
            raise AlreadyDecidedError(record.id, record.status)

        await self._authorize(repos.users, record, acting_user_id)
        return record, ticket

    async def _authorize(
        self,
        users: UserDirectory,
        record: TicketApproval,
        acting_user_id: int,
    ) -> None:
        """Check that a user may decide a gate.

        Allowed: the named approver; anyone holding the gate's capability
        when no approver is named; anyone holding the override capability.
        """
        if record.approver_id is not None and record.approver_id == acting_user_id:
            return
        if record.approver_id is None and await users.has_capability(
            acting_user_id, record.approver_capability
        ):
            return
        if await users.has_capability(
            acting_user_id, self.settings.approval_override_capability
        ):
            logger.info(
                f"User {acting_user_id} acting on approval {record.id} "
                f"with override capability"
            )
            return

        logger.warning(f"User {acting_user_id} not allowed to act on approval {record.id}")
        raise ForbiddenError(
            f"User {acting_user_id} is not authorized to act on approval {record.id}"
        )

    async def _snapshot(self, repos: _Repositories, ticket: Ticket) -> TicketSnapshot:
        return TicketSnapshot(
            ticket_id=ticket.id,
            priority=ticket.priority,
            category_id=ticket.category_id,
            requester_id=ticket.requester_id,
            requester_department_id=await repos.users.department_of(ticket.requester_id),
            assigned_team_id=ticket.assigned_team_id,
            estimated_cost=ticket.estimated_cost,
            requester_can_auto_approve=await repos.users.has_capability(
                ticket.requester_id, Permission.TICKETS_AUTO_APPROVE.value
            ),
        )

    def _gate_capability(self, level: ApprovalLevel) -> str:
        """Capability an unnamed approver needs for a gate level."""
        if level == ApprovalLevel.HEAD_OF_DEPARTMENT:
            return self.settings.approval_hod_capability
        return self.settings.approval_default_capability

    async def _resolve_approver(
        self, users: UserDirectory, gate: GateSpec
    ) -> Approver:
        """Find the approver a gate is addressed to.

        Falls back to any holder of the gate level's capability when nobody
        can be resolved.
        """
        resolver = gate.resolver
        if resolver.kind == ResolverKind.REPORTING_MANAGER and resolver.user_id is not None:
            manager_id = await users.reporting_manager_of(resolver.user_id)
            if manager_id is not None:
                return SpecificApprover(manager_id)
        elif resolver.kind == ResolverKind.DEPARTMENT_HEAD:
            for department_id in resolver.department_ids:
                head_id = await users.department_head_of(department_id)
                if head_id is not None:
                    return SpecificApprover(head_id)

        capability = self._gate_capability(gate.level)
        logger.info(
            f"No {resolver.kind.value} approver found; gate open to holders of {capability}"
        )
        return AnyWithCapability(capability)

    async def _create_gate(
        self,
        repos: _Repositories,
        ticket: Ticket,
        gate: GateSpec,
        approval_pass: int,
        actor_id: int | None,
        outbox: list[_Notification],
    ) -> TicketApproval:
        approver = await self._resolve_approver(repos.users, gate)
        if isinstance(approver, SpecificApprover):
            approver_id = approver.user_id
            capability = self._gate_capability(gate.level)
        else:
            approver_id = None
            capability = approver.capability

        record = await repos.approvals.create({
            "ticket_id": ticket.id,
            "approval_level": gate.level.value,
            "approval_pass": approval_pass,
            "sequence": gate.sequence,
            "status": ApprovalStatus.PENDING.value,
            "approver_id": approver_id,
            "approver_capability": capability,
        })

        await repos.history.record(
            ticket.id,
            "approval_requested",
            user_id=actor_id,
            field_name="approval_level",
            new_value=gate.level.value,
            description=f"{_level_label(gate.level.value)} approval requested",
        )

        if approver_id is not None:
            outbox.append(_Notification(
                NotificationEvent.APPROVAL_REQUESTED,
                approver_id,
                {
                    "ticket_id": ticket.id,
                    "ticket_number": ticket.ticket_number,
                    "subject": ticket.subject,
                    "approval_id": record.id,
                    "approval_level": gate.level.value,
                },
            ))

        logger.debug(
            f"Created {gate.level.value} gate {record.id} for ticket {ticket.id} "
            f"(pass {approval_pass}, sequence {gate.sequence})"
        )
        return record

    async def _finalize(
        self,
        repos: _Repositories,
        ticket: Ticket,
        record: TicketApproval,
        category: CategoryApprovalPolicy | None,
        acting_user_id: int,
    ) -> None:
        """Route the ticket after its last gate is approved."""
        team_id = await self._routed_team(repos, record)
        if team_id is None:
            team_id = _default_team(ticket, category)

        previous_team = ticket.assigned_team_id
        await self._apply_projection(
            repos,
            ticket,
            self.projector.final_approval(team_id),
            assigned_team_id=team_id,
        )
        if team_id is not None:
            await repos.history.record(
                ticket.id,
                "routed",
                user_id=acting_user_id,
                field_name="assigned_team_id",
                old_value=previous_team,
                new_value=team_id,
                description="Routed after final approval",
            )

    async def _routed_team(
        self, repos: _Repositories, record: TicketApproval
    ) -> int | None:
        """Latest routing choice made within the record's pass."""
        if record.routed_to_team_id is not None:
            return record.routed_to_team_id
        same_pass = [
            r for r in await repos.approvals.get_by_ticket(record.ticket_id)
            if r.approval_pass == record.approval_pass and r.routed_to_team_id is not None
        ]
        return same_pass[-1].routed_to_team_id if same_pass else None

    async def _apply_projection(
        self,
        repos: _Repositories,
        ticket: Ticket,
        projection: StatusProjection,
        **values: Any,
    ) -> None:
        applied = await repos.tickets.transition(
            ticket.id,
            expected_from=projection.expected_from,
            status=projection.status.value,
            approval_phase=projection.approval_phase.value,
            **values,
        )
        if not applied:
            await repos.session.refresh(ticket)
            raise InvalidStateError(
                f"Ticket {ticket.ticket_number} cannot move to "
                f"{projection.status.value} from status {ticket.status}",
                current_status=ticket.status,
            )

    async def _dispatch(self, outbox: list[_Notification]) -> None:
        for notification in outbox:
            await self._notify_safely(notification)

    async def _notify_safely(self, notification: _Notification) -> None:
        try:
            await self.notifier.notify(
                notification.event_type.value,
                notification.recipient_id,
                notification.payload,
            )
        except Exception as e:
            logger.error(
                f"Failed to send {notification.event_type.value} notification to "
                f"user {notification.recipient_id}: {e}"
            )


def _level_label(level: str) -> str:
    return "Head of Department" if level == "head_of_department" else "Line Manager"


def _default_team(
    ticket: Ticket, category: CategoryApprovalPolicy | None
) -> int | None:
    if category is not None and category.default_team_id is not None:
        return category.default_team_id
    return ticket.assigned_team_id


# Singleton instance
_workflow_service: ApprovalWorkflowService | None = None


def get_approval_workflow_service() -> ApprovalWorkflowService:
    """Get or create approval workflow service singleton.

    @returns ApprovalWorkflowService instance
    """
    global _workflow_service
    if _workflow_service is None:
        _workflow_service = ApprovalWorkflowService()
    return _workflow_service


def reset_approval_workflow_service() -> None:
    """Reset approval workflow service singleton (for testing)."""
    global _workflow_service
    _workflow_service = None
