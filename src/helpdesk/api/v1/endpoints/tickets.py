"""Ticket approval state API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from helpdesk.api.errors import http_error
from helpdesk.services.approval.exceptions import ApprovalWorkflowError
from helpdesk.services.approval.schemas import (
    ApprovalRecord,
    ResubmissionStatus,
    TicketSummary,
)
from helpdesk.services.approval.workflow import (
    ApprovalWorkflowService,
    get_approval_workflow_service,
)
from helpdesk.services.auth import CurrentUser

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])

WorkflowService = Annotated[
    ApprovalWorkflowService, Depends(get_approval_workflow_service)
]


@router.post("/{ticket_id}/resubmit", response_model=TicketSummary)
async def resubmit(
    ticket_id: int,
    user: CurrentUser,
    service: WorkflowService,
) -> TicketSummary:
    """Resubmit a rejected ticket for approval.

    Fails with 409 once the ticket has been rejected as often as the
    resubmission ceiling allows.
    """
    try:
        return await service.resubmit(ticket_id, user.user_id)
    except ApprovalWorkflowError as e:
        raise http_error(e)


@router.get("/{ticket_id}/approvals", response_model=list[ApprovalRecord])
async def approval_history(
    ticket_id: int,
    user: CurrentUser,
    service: WorkflowService,
) -> list[ApprovalRecord]:
    """All gates of a ticket, ordered by pass and sequence."""
    try:
        return await service.approval_history(ticket_id)
    except ApprovalWorkflowError as e:
        raise http_error(e)


@router.get("/{ticket_id}/approvals/current", response_model=ApprovalRecord | None)
async def current_approval(
    ticket_id: int,
    user: CurrentUser,
    service: WorkflowService,
) -> ApprovalRecord | None:
    """The pending gate of a ticket, or null."""
    try:
        return await service.current_approval(ticket_id)
    except ApprovalWorkflowError as e:
        raise http_error(e)


@router.get("/{ticket_id}/approvals/rejected", response_model=ApprovalRecord | None)
async def rejected_approval(
    ticket_id: int,
    user: CurrentUser,
    service: WorkflowService,
) -> ApprovalRecord | None:
    """The rejection that cancelled the ticket, or null."""
    try:
        return await service.rejected_approval(ticket_id)
    except ApprovalWorkflowError as e:
        raise http_error(e)


@router.get("/{ticket_id}/approvals/resubmission", response_model=ResubmissionStatus)
async def resubmission_status(
    ticket_id: int,
    user: CurrentUser,
    service: WorkflowService,
) -> ResubmissionStatus:
    """Rejections so far and resubmissions left."""
    try:
        return await service.resubmission_status(ticket_id)
    except ApprovalWorkflowError as e:
        raise http_error(e)
