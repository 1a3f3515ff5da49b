"""Approval decision API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from helpdesk.api.errors import http_error
from helpdesk.services.approval.exceptions import ApprovalWorkflowError
from helpdesk.services.approval.schemas import (
    ApprovalRecord,
    ApproveRequest,
    RejectRequest,
)
from helpdesk.services.approval.workflow import (
    ApprovalWorkflowService,
    get_approval_workflow_service,
)
from helpdesk.services.auth import CurrentUser

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/approvals", tags=["Approvals"])

WorkflowService = Annotated[
    ApprovalWorkflowService, Depends(get_approval_workflow_service)
]


@router.get("/pending", response_model=list[ApprovalRecord])
async def list_pending_for_user(
    user: CurrentUser,
    service: WorkflowService,
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Maximum records"),
) -> list[ApprovalRecord]:
    """List gates the current user can decide, newest first.

    Includes unassigned gates when the user holds their capability.
    """
    return await service.pending_approvals_for(user.user_id, skip=skip, limit=limit)


@router.post("/{approval_id}/approve", response_model=ApprovalRecord)
async def approve(
    approval_id: int,
    request: ApproveRequest,
    user: CurrentUser,
    service: WorkflowService,
) -> ApprovalRecord:
    """Approve a pending gate.

    On the last gate the ticket is routed to ``routed_to_team_id`` (or the
    category default team).
    """
    try:
        return await service.approve(
            approval_id,
            user.user_id,
            comments=request.comments,
            routed_to_team_id=request.routed_to_team_id,
        )
    except ApprovalWorkflowError as e:
        raise http_error(e)


@router.post("/{approval_id}/reject", response_model=ApprovalRecord)
async def reject(
    approval_id: int,
    request: RejectRequest,
    user: CurrentUser,
    service: WorkflowService,
) -> ApprovalRecord:
    """Reject a pending gate. The ticket is cancelled."""
    try:
        return await service.reject(approval_id, user.user_id, request.comments)
    except ApprovalWorkflowError as e:
        raise http_error(e)
