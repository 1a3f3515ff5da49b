"""Tests for the approval workflow service."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from helpdesk.models import Department, TicketApproval, User
from helpdesk.repositories import ApprovalRecordRepository, TicketHistoryRepository
from helpdesk.services.approval import (
    AlreadyDecidedError,
    ApprovalLevel,
    ApprovalPhase,
    ApprovalStatus,
    ApprovalValidationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ResubmissionLimitExceeded,
    TicketStatus,
)
from helpdesk.services.approval.projector import StatusProjection, TicketStatusProjector
from helpdesk.services.approval.workflow import ApprovalWorkflowService


async def _history_actions(session_factory, ticket_id: int) -> list[str]:
    async with session_factory() as session:
        entries = await TicketHistoryRepository(session).get_by_ticket(ticket_id)
        return [e.action for e in sorted(entries, key=lambda e: e.id)]


class TestEndToEndScenarios:
    """Full approval flows through the service."""

    @pytest.mark.asyncio
    async def test_line_manager_only_approval(self, service, org, make_ticket, load_ticket):
        """LM-only category: one gate, approval makes the ticket actionable."""
        ticket_id = await make_ticket(category_id=org.lm_only)

        record = await service.initiate(ticket_id, org.requester)

        assert record.approval_level == ApprovalLevel.LINE_MANAGER
        assert record.status == ApprovalStatus.PENDING
        assert record.approver_id == org.lm
        assert record.sequence == 1
        assert record.approval_pass == 1
        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.OPEN.value
        assert ticket.approval_phase == ApprovalPhase.AWAITING_APPROVAL.value

        approved = await service.approve(record.id, org.lm)

        assert approved.status == ApprovalStatus.APPROVED
        assert approved.approved_at is not None
        assert approved.rejected_at is None
        assert approved.decided_by_id == org.lm
        assert approved.comments is None

        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.ASSIGNED.value
        assert ticket.assigned_team_id == org.it
        assert ticket.approval_phase == ApprovalPhase.APPROVED.value

        history = await service.approval_history(ticket_id)
        assert len(history) == 1
        assert await service.current_approval(ticket_id) is None

    @pytest.mark.asyncio
    async def test_two_gates_then_hod_rejects(
        self, service, org, make_ticket, load_ticket, session_factory
    ):
        """Threshold exceeded: LM then HOD; HOD rejection cancels the ticket."""
        ticket_id = await make_ticket(
            category_id=org.hod_threshold, estimated_cost=Decimal("5000.00")
        )

        lm_record = await service.initiate(ticket_id, org.requester)
        assert lm_record.approval_level == ApprovalLevel.LINE_MANAGER
        assert len(await service.approval_history(ticket_id)) == 1

        await service.approve(lm_record.id, org.lm)

        hod_record = await service.current_approval(ticket_id)
        assert hod_record is not None
        assert hod_record.approval_level == ApprovalLevel.HEAD_OF_DEPARTMENT
        assert hod_record.sequence == 2
        assert hod_record.approval_pass == 1
        assert hod_record.approver_id == org.it_head
        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.OPEN.value
        assert ticket.approval_phase == ApprovalPhase.AWAITING_APPROVAL.value

        rejected = await service.reject(
            hod_record.id, org.it_head, "insufficient budget detail"
        )

        assert rejected.status == ApprovalStatus.REJECTED
        assert rejected.comments == "insufficient budget detail"
        assert rejected.rejected_at is not None
        assert rejected.approved_at is None

        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.CANCELLED.value
        assert ticket.approval_phase == ApprovalPhase.REJECTED.value

        history = await service.approval_history(ticket_id)
        assert [r.status for r in history] == [
            ApprovalStatus.APPROVED,
            ApprovalStatus.REJECTED,
        ]
        assert history[0].approved_at is not None

        assert await _history_actions(session_factory, ticket_id) == [
            "approval_requested",
            "approved",
            "approval_requested",
            "rejected",
        ]

    @pytest.mark.asyncio
    async def test_resubmission_starts_new_pass(
        self, service, org, make_ticket, load_ticket
    ):
        """A resubmitted ticket gets a fresh LM gate in pass 2."""
        ticket_id = await make_ticket(
            category_id=org.hod_threshold, estimated_cost=Decimal("5000.00")
        )
        lm_record = await service.initiate(ticket_id)
        await service.approve(lm_record.id, org.lm)
        hod_record = await service.current_approval(ticket_id)
        await service.reject(hod_record.id, org.it_head, "insufficient budget detail")

        status_before = await service.resubmission_status(ticket_id)
        assert status_before.rejected_count == 1
        assert status_before.remaining == 2

        ticket = await service.resubmit(ticket_id, org.requester)

        assert ticket.status == TicketStatus.OPEN
        assert ticket.approval_phase == ApprovalPhase.AWAITING_APPROVAL
        current = await service.current_approval(ticket_id)
        assert current.approval_level == ApprovalLevel.LINE_MANAGER
        assert current.status == ApprovalStatus.PENDING
        assert current.sequence == 1
        assert current.approval_pass == 2

        history = await service.approval_history(ticket_id)
        assert len(history) == 3
        assert history[0].status == ApprovalStatus.APPROVED
        assert history[1].status == ApprovalStatus.REJECTED
        assert await service.rejected_approval(ticket_id) is None

    @pytest.mark.asyncio
    async def test_resubmission_ceiling(self, service, org, make_ticket, load_ticket):
        """After the third rejection resubmission is refused."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        for attempt in range(1, 4):
            await service.reject(record.id, org.lm, f"rejection {attempt}")
            if attempt < 3:
                await service.resubmit(ticket_id, org.requester)
                record = await service.current_approval(ticket_id)
                assert record.approval_pass == attempt + 1

        with pytest.raises(ResubmissionLimitExceeded) as exc_info:
            await service.resubmit(ticket_id, org.requester)

        assert exc_info.value.rejected_count == 3
        assert exc_info.value.ceiling == 3
        assert "Maximum resubmission limit (3) reached" in str(exc_info.value)
        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.CANCELLED.value
        assert await service.current_approval(ticket_id) is None

        status = await service.resubmission_status(ticket_id)
        assert status.remaining == 0

    @pytest.mark.asyncio
    async def test_unauthorized_user_is_forbidden(self, service, org, make_ticket):
        """A user who is neither approver nor capability holder cannot act."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        with pytest.raises(ForbiddenError):
            await service.approve(record.id, org.agent)

        current = await service.current_approval(ticket_id)
        assert current.id == record.id
        assert current.status == ApprovalStatus.PENDING

    @pytest.mark.asyncio
    async def test_approve_on_resolved_ticket(
        self, service, org, make_ticket, set_ticket_status
    ):
        """Approving a gate of a resolved ticket fails with its status."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        await set_ticket_status(ticket_id, "resolved")

        with pytest.raises(InvalidStateError) as exc_info:
            await service.approve(record.id, org.lm)

        assert exc_info.value.current_status == "resolved"
        assert "resolved" in str(exc_info.value)
        current = await service.current_approval(ticket_id)
        assert current.status == ApprovalStatus.PENDING


class TestInitiate:
    """Tests for starting the workflow."""

    @pytest.mark.asyncio
    async def test_no_approval_required_routes_directly(
        self, service, org, make_ticket, load_ticket, notifier
    ):
        """Categories without approval route straight to the default team."""
        ticket_id = await make_ticket(category_id=org.no_approval)

        assert await service.initiate(ticket_id) is None

        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.ASSIGNED.value
        assert ticket.assigned_team_id == org.it
        assert ticket.approval_phase == ApprovalPhase.NOT_REQUIRED.value
        assert await service.approval_history(ticket_id) == []
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_initiate_is_idempotent(
        self, service, org, make_ticket, session_factory, notifier
    ):
        """A second initiate returns the existing pending gate."""
        ticket_id = await make_ticket(category_id=org.lm_only)

        first = await service.initiate(ticket_id)
        second = await service.initiate(ticket_id)

        assert second.id == first.id
        assert len(await service.approval_history(ticket_id)) == 1
        assert len(notifier.events("approval_requested")) == 1
        assert await _history_actions(session_factory, ticket_id) == ["approval_requested"]

    @pytest.mark.asyncio
    async def test_cost_threshold_overrides_category_flag(self, service, org, make_ticket):
        """Reaching the threshold requires approval even when the category does not."""
        ticket_id = await make_ticket(
            category_id=org.threshold_only, estimated_cost=Decimal("500.00")
        )

        record = await service.initiate(ticket_id)

        assert record is not None
        assert record.approval_level == ApprovalLevel.LINE_MANAGER

        await service.approve(record.id, org.lm)
        hod_record = await service.current_approval(ticket_id)
        assert hod_record.approval_level == ApprovalLevel.HEAD_OF_DEPARTMENT

    @pytest.mark.asyncio
    async def test_below_threshold_follows_category_flag(self, service, org, make_ticket):
        ticket_id = await make_ticket(
            category_id=org.threshold_only, estimated_cost=Decimal("499.99")
        )

        assert await service.initiate(ticket_id) is None

    @pytest.mark.asyncio
    async def test_uncategorised_ticket_requires_approval(self, service, org, make_ticket):
        ticket_id = await make_ticket(category_id=None)

        record = await service.initiate(ticket_id)

        assert record.approval_level == ApprovalLevel.LINE_MANAGER
        assert record.approver_id == org.lm

    @pytest.mark.asyncio
    async def test_uncategorised_ticket_auto_approved(
        self, service, org, make_ticket, load_ticket
    ):
        """Requesters with the auto-approve capability skip approval."""
        ticket_id = await make_ticket(category_id=None, requester_id=org.director)

        assert await service.initiate(ticket_id) is None

        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.OPEN.value
        assert ticket.approval_phase == ApprovalPhase.NOT_REQUIRED.value

    @pytest.mark.asyncio
    async def test_hod_priority_adds_second_gate(
        self, session_factory, notifier, settings, org, make_ticket
    ):
        """Configured priorities always need Head of Department approval."""
        settings = settings.model_copy(update={"approval_hod_priorities": ["critical"]})
        service = ApprovalWorkflowService(
            session_factory=session_factory, notifier=notifier, settings=settings
        )
        ticket_id = await make_ticket(category_id=org.lm_only, priority="critical")

        record = await service.initiate(ticket_id)
        await service.approve(record.id, org.lm)

        hod_record = await service.current_approval(ticket_id)
        assert hod_record.approval_level == ApprovalLevel.HEAD_OF_DEPARTMENT
        assert hod_record.approver_id == org.it_head

    @pytest.mark.asyncio
    async def test_hod_falls_back_to_requester_department(self, service, org, make_ticket):
        """Without team information the requester's department head approves."""
        ticket_id = await make_ticket(category_id=org.hod_always)

        record = await service.initiate(ticket_id)
        await service.approve(record.id, org.lm)

        hod_record = await service.current_approval(ticket_id)
        assert hod_record.approver_id == org.finance_head

    @pytest.mark.asyncio
    async def test_unknown_ticket(self, service, org):
        with pytest.raises(NotFoundError):
            await service.initiate(999_999)


class TestSequencing:
    """Gates open strictly one after another."""

    @pytest.mark.asyncio
    async def test_no_hod_gate_before_lm_approval(
        self, service, org, make_ticket, session_factory
    ):
        ticket_id = await make_ticket(
            category_id=org.hod_threshold, estimated_cost=Decimal("2500.00")
        )
        await service.initiate(ticket_id)

        async with session_factory() as session:
            repo = ApprovalRecordRepository(session)
            levels = [r.approval_level for r in await repo.get_by_ticket(ticket_id)]
        assert levels == ["line_manager"]

    @pytest.mark.asyncio
    async def test_at_most_one_pending_gate(
        self, service, org, make_ticket, session_factory
    ):
        ticket_id = await make_ticket(
            category_id=org.hod_threshold, estimated_cost=Decimal("2500.00")
        )
        record = await service.initiate(ticket_id)
        await service.approve(record.id, org.lm)

        async with session_factory() as session:
            pending = await ApprovalRecordRepository(session).count(
                ticket_id=ticket_id, status="pending"
            )
        assert pending == 1

    @pytest.mark.asyncio
    async def test_database_rejects_second_pending_gate(
        self, service, org, make_ticket, session_factory
    ):
        """The partial unique index backs the single-pending invariant."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        await service.initiate(ticket_id)

        async with session_factory() as session:
            session.add(TicketApproval(
                ticket_id=ticket_id,
                approval_level="line_manager",
                approval_pass=1,
                sequence=1,
                status="pending",
            ))
            with pytest.raises(IntegrityError):
                await session.flush()
            await session.rollback()


class TestDecisions:
    """Tests for approve / reject preconditions and effects."""

    @pytest.mark.asyncio
    async def test_approve_twice_fails(self, service, org, make_ticket, notifier):
        """The second approval of a record is refused without side effects."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        first = await service.approve(record.id, org.lm, comments="looks fine")
        sent_before = len(notifier.sent)

        with pytest.raises(AlreadyDecidedError) as exc_info:
            await service.approve(record.id, org.lm)

        assert exc_info.value.status == "approved"
        assert len(notifier.sent) == sent_before
        history = await service.approval_history(ticket_id)
        assert history[0].approved_at == first.approved_at
        assert history[0].comments == "looks fine"

    @pytest.mark.asyncio
    async def test_concurrent_decision_loses(self, service, org, make_ticket, session_factory):
        """Only one conditional decision on a pending record succeeds."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        async with session_factory() as session:
            repo = ApprovalRecordRepository(session)
            assert await repo.decide(record.id, "approved", decided_by_id=org.lm) is True
            assert await repo.decide(
                record.id, "rejected", decided_by_id=org.admin, comments="late"
            ) is False
            await session.commit()

        history = await service.approval_history(ticket_id)
        assert history[0].status == ApprovalStatus.APPROVED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("comments", [None, "", "   "])
    async def test_reject_requires_comments(self, service, org, make_ticket, comments):
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        with pytest.raises(ApprovalValidationError) as exc_info:
            await service.reject(record.id, org.lm, comments)

        assert exc_info.value.field == "comments"
        current = await service.current_approval(ticket_id)
        assert current.status == ApprovalStatus.PENDING

    @pytest.mark.asyncio
    async def test_reject_twice_hits_terminal_guard(self, service, org, make_ticket):
        """The ticket is cancelled after the first rejection."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        await service.reject(record.id, org.lm, "not needed")

        with pytest.raises(InvalidStateError) as exc_info:
            await service.reject(record.id, org.lm, "still not needed")

        assert exc_info.value.current_status == "cancelled"

    @pytest.mark.asyncio
    async def test_rejected_comments_are_stored_trimmed(self, service, org, make_ticket):
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        rejected = await service.reject(record.id, org.lm, "  duplicate request  ")

        assert rejected.comments == "duplicate request"
        assert (await service.rejected_approval(ticket_id)).id == record.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["resolved", "closed", "cancelled"])
    async def test_reject_on_terminal_ticket(
        self, service, org, make_ticket, set_ticket_status, status
    ):
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        await set_ticket_status(ticket_id, status)

        with pytest.raises(InvalidStateError) as exc_info:
            await service.reject(record.id, org.lm, "too late")

        assert exc_info.value.current_status == status

    @pytest.mark.asyncio
    async def test_unknown_record(self, service, org):
        with pytest.raises(NotFoundError):
            await service.approve(424242, org.lm)

    @pytest.mark.asyncio
    async def test_override_capability_may_approve(self, service, org, make_ticket):
        """Holders of tickets:assign may act on any gate."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        approved = await service.approve(record.id, org.admin)

        assert approved.status == ApprovalStatus.APPROVED
        assert approved.decided_by_id == org.admin
        assert approved.approver_id == org.lm

    @pytest.mark.asyncio
    async def test_other_approver_cannot_take_named_gate(self, service, org, make_ticket):
        """Holding tickets:approve is not enough for a gate naming someone else."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        with pytest.raises(ForbiddenError):
            await service.approve(record.id, org.spare_manager)

    @pytest.mark.asyncio
    async def test_unassigned_gate_open_to_capability_holders(
        self, service, org, make_ticket
    ):
        """Without a reporting manager any approver may decide the gate."""
        ticket_id = await make_ticket(
            category_id=org.lm_only, requester_id=org.orphan_requester
        )
        record = await service.initiate(ticket_id)

        assert record.approver_id is None
        assert record.approver_capability == "tickets:approve"

        with pytest.raises(ForbiddenError):
            await service.approve(record.id, org.agent)

        inbox = await service.pending_approvals_for(org.spare_manager)
        assert [r.id for r in inbox] == [record.id]

        approved = await service.approve(record.id, org.spare_manager)
        assert approved.decided_by_id == org.spare_manager

    @pytest.mark.asyncio
    async def test_routed_team_overrides_default(
        self, service, org, make_ticket, load_ticket, session_factory
    ):
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        approved = await service.approve(record.id, org.lm, routed_to_team_id=org.finance)

        assert approved.routed_to_team_id == org.finance
        ticket = await load_ticket(ticket_id)
        assert ticket.assigned_team_id == org.finance
        assert ticket.status == TicketStatus.ASSIGNED.value
        assert await _history_actions(session_factory, ticket_id) == [
            "approval_requested",
            "approved",
            "routed",
        ]

    @pytest.mark.asyncio
    async def test_routing_choice_carries_to_final_gate(
        self, service, org, make_ticket, load_ticket
    ):
        """A team chosen at the LM gate applies when the HOD approves."""
        ticket_id = await make_ticket(
            category_id=org.hod_threshold, estimated_cost=Decimal("1500.00")
        )
        record = await service.initiate(ticket_id)
        await service.approve(record.id, org.lm, routed_to_team_id=org.finance)
        hod_record = await service.current_approval(ticket_id)

        await service.approve(hod_record.id, org.it_head)

        ticket = await load_ticket(ticket_id)
        assert ticket.assigned_team_id == org.finance

    @pytest.mark.asyncio
    async def test_final_approval_without_team_stays_open(
        self, service, org, make_ticket, load_ticket
    ):
        ticket_id = await make_ticket(category_id=org.hod_always)
        record = await service.initiate(ticket_id)
        await service.approve(record.id, org.lm)
        hod_record = await service.current_approval(ticket_id)

        await service.approve(hod_record.id, org.finance_head)

        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.OPEN.value
        assert ticket.assigned_team_id is None
        assert ticket.approval_phase == ApprovalPhase.APPROVED.value


    @pytest.mark.asyncio
    async def test_unresolved_hod_gate_needs_hod_capability(
        self, service, org, make_ticket, session_factory
    ):
        """A Line Manager cannot clear an unassigned Head of Department gate."""
        async with session_factory() as session:
            facilities = Department(name="Facilities", code="FAC")
            session.add(facilities)
            await session.flush()
            requester = User(
                name="Hal Headless", email="hal@example.com",
                department_id=facilities.id, manager_id=org.lm, roles=["User"],
            )
            session.add(requester)
            await session.commit()
            requester_id = requester.id

        ticket_id = await make_ticket(category_id=org.hod_always, requester_id=requester_id)
        record = await service.initiate(ticket_id)
        await service.approve(record.id, org.lm)

        hod_record = await service.current_approval(ticket_id)
        assert hod_record.approval_level == ApprovalLevel.HEAD_OF_DEPARTMENT
        assert hod_record.approver_id is None
        assert hod_record.approver_capability == "tickets:approve-hod"

        for line_manager in (org.lm, org.spare_manager):
            with pytest.raises(ForbiddenError):
                await service.approve(hod_record.id, line_manager)
        assert await service.pending_approvals_for(org.lm) == []
        assert [r.id for r in await service.pending_approvals_for(org.director)] == [
            hod_record.id
        ]

        approved = await service.approve(hod_record.id, org.director)
        assert approved.decided_by_id == org.director

    @pytest.mark.asyncio
    async def test_routed_team_must_exist(
        self, service, org, make_ticket, load_ticket, session_factory
    ):
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        with pytest.raises(ApprovalValidationError) as exc_info:
            await service.approve(record.id, org.lm, routed_to_team_id=9999)

        assert exc_info.value.field == "routed_to_team_id"
        current = await service.current_approval(ticket_id)
        assert current.id == record.id
        assert current.status == ApprovalStatus.PENDING
        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.OPEN.value
        assert ticket.assigned_team_id is None
        assert await _history_actions(session_factory, ticket_id) == ["approval_requested"]


class _NarrowRejectionProjector(TicketStatusProjector):
    """Only lets rejections cancel tickets that are already assigned."""

    def rejected(self) -> StatusProjection:
        projection = super().rejected()
        return StatusProjection(
            status=projection.status,
            approval_phase=projection.approval_phase,
            expected_from=frozenset({TicketStatus.ASSIGNED.value}),
        )


class TestAtomicity:
    """A decision and its ticket update commit or roll back together."""

    @pytest.mark.asyncio
    async def test_failed_final_transition_keeps_gate_pending(
        self, service, org, make_ticket, load_ticket, set_ticket_status, session_factory
    ):
        """Work started on the ticket blocks final approval without deciding the gate."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        await set_ticket_status(ticket_id, "in_progress")

        with pytest.raises(InvalidStateError) as exc_info:
            await service.approve(record.id, org.lm, comments="fine by me")

        assert exc_info.value.current_status == "in_progress"
        async with session_factory() as session:
            stored = await session.get(TicketApproval, record.id)
            assert stored.status == ApprovalStatus.PENDING.value
            assert stored.decided_by_id is None
            assert stored.approved_at is None
        ticket = await load_ticket(ticket_id)
        assert ticket.status == "in_progress"
        assert ticket.approval_phase == ApprovalPhase.AWAITING_APPROVAL.value
        assert await _history_actions(session_factory, ticket_id) == ["approval_requested"]

    @pytest.mark.asyncio
    async def test_failed_rejection_transition_writes_nothing(
        self, session_factory, notifier, settings, org, make_ticket, load_ticket
    ):
        service = ApprovalWorkflowService(
            session_factory=session_factory,
            notifier=notifier,
            settings=settings,
            projector=_NarrowRejectionProjector(),
        )
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        with pytest.raises(InvalidStateError) as exc_info:
            await service.reject(record.id, org.lm, "not needed")

        assert exc_info.value.current_status == "open"
        async with session_factory() as session:
            stored = await session.get(TicketApproval, record.id)
            assert stored.status == ApprovalStatus.PENDING.value
            assert stored.comments is None
            assert stored.rejected_at is None
        ticket = await load_ticket(ticket_id)
        assert ticket.status == TicketStatus.OPEN.value
        assert await _history_actions(session_factory, ticket_id) == ["approval_requested"]
        assert notifier.events("approval_rejected") == []


class TestResubmit:
    """Tests for resubmission preconditions."""

    @pytest.mark.asyncio
    async def test_resubmit_requires_cancelled_ticket(self, service, org, make_ticket):
        ticket_id = await make_ticket(category_id=org.lm_only)
        await service.initiate(ticket_id)

        with pytest.raises(InvalidStateError) as exc_info:
            await service.resubmit(ticket_id, org.requester)

        assert exc_info.value.current_status == "open"

    @pytest.mark.asyncio
    async def test_resubmit_requires_rejection(
        self, service, org, make_ticket, set_ticket_status
    ):
        """A ticket cancelled for another reason cannot be resubmitted."""
        ticket_id = await make_ticket(category_id=org.lm_only)
        await set_ticket_status(ticket_id, "cancelled")

        with pytest.raises(InvalidStateError):
            await service.resubmit(ticket_id, org.requester)

    @pytest.mark.asyncio
    async def test_resubmit_records_attempt(
        self, service, org, make_ticket, session_factory
    ):
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        await service.reject(record.id, org.lm, "missing justification")

        await service.resubmit(ticket_id, org.requester)

        async with session_factory() as session:
            entries = await TicketHistoryRepository(session).get_by_ticket(ticket_id)
        resubmitted = [e for e in entries if e.action == "resubmitted"]
        assert len(resubmitted) == 1
        assert resubmitted[0].description.endswith("(Attempt 1 of 3)")
        assert resubmitted[0].old_value == "cancelled"
        assert resubmitted[0].new_value == "open"

    @pytest.mark.asyncio
    async def test_ceiling_is_configurable(
        self, session_factory, notifier, settings, org, make_ticket
    ):
        settings = settings.model_copy(update={"approval_resubmission_ceiling": 1})
        service = ApprovalWorkflowService(
            session_factory=session_factory, notifier=notifier, settings=settings
        )
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        await service.reject(record.id, org.lm, "no")

        with pytest.raises(ResubmissionLimitExceeded) as exc_info:
            await service.resubmit(ticket_id, org.requester)

        assert exc_info.value.ceiling == 1


class TestQueries:
    """Tests for the read-side queries."""

    @pytest.mark.asyncio
    async def test_pending_for_user_newest_first(self, service, org, make_ticket):
        first = await service.initiate(await make_ticket(category_id=org.lm_only))
        second = await service.initiate(await make_ticket(category_id=org.lm_only))

        inbox = await service.pending_approvals_for(org.lm)

        assert [r.id for r in inbox] == [second.id, first.id]
        assert await service.pending_approvals_for(org.agent) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["resolved", "closed", "cancelled"])
    async def test_pending_for_user_skips_terminal_tickets(
        self, service, org, make_ticket, set_ticket_status, status
    ):
        ticket_id = await make_ticket(category_id=org.lm_only)
        await service.initiate(ticket_id)
        await set_ticket_status(ticket_id, status)

        assert await service.pending_approvals_for(org.lm) == []

    @pytest.mark.asyncio
    async def test_rejected_approval_only_while_cancelled(
        self, service, org, make_ticket
    ):
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)
        assert await service.rejected_approval(ticket_id) is None

        await service.reject(record.id, org.lm, "wrong category")

        rejected = await service.rejected_approval(ticket_id)
        assert rejected.id == record.id
        assert rejected.comments == "wrong category"

    @pytest.mark.asyncio
    async def test_queries_on_unknown_ticket(self, service, org):
        with pytest.raises(NotFoundError):
            await service.approval_history(31337)
        with pytest.raises(NotFoundError):
            await service.resubmission_status(31337)
        with pytest.raises(NotFoundError):
            await service.current_approval(31337)


class TestNotifications:
    """Tests for notification side effects."""

    @pytest.mark.asyncio
    async def test_events_sent(self, service, org, make_ticket, notifier):
        ticket_id = await make_ticket(
            category_id=org.hod_threshold, estimated_cost=Decimal("1000.00")
        )
        record = await service.initiate(ticket_id)
        assert notifier.events("approval_requested")[0][1] == org.lm

        await service.approve(record.id, org.lm)
        requested = notifier.events("approval_requested")
        assert [n[1] for n in requested] == [org.lm, org.it_head]
        approved = notifier.events("approval_approved")
        assert approved[0][1] == org.requester
        assert approved[0][2]["final"] is False

        hod_record = await service.current_approval(ticket_id)
        await service.reject(hod_record.id, org.it_head, "over budget")
        rejected = notifier.events("approval_rejected")
        assert rejected[0][1] == org.requester
        assert rejected[0][2]["reason"] == "over budget"

    @pytest.mark.asyncio
    async def test_no_request_notification_for_unassigned_gate(
        self, service, org, make_ticket, notifier
    ):
        ticket_id = await make_ticket(
            category_id=org.lm_only, requester_id=org.orphan_requester
        )
        await service.initiate(ticket_id)

        assert notifier.events("approval_requested") == []

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_undo_decision(
        self, session_factory, settings, org, make_ticket, load_ticket, failing_notifier
    ):
        failing = failing_notifier
        service = ApprovalWorkflowService(
            session_factory=session_factory, notifier=failing, settings=settings
        )
        ticket_id = await make_ticket(category_id=org.lm_only)
        record = await service.initiate(ticket_id)

        approved = await service.approve(record.id, org.lm)

        assert failing.attempts == 2
        assert approved.status == ApprovalStatus.APPROVED
        ticket = await load_ticket(ticket_id)
        assert ticket.approval_phase == ApprovalPhase.APPROVED.value
