"""Ticket approval workflow.

The workflow service lives in ``helpdesk.services.approval.workflow``; it is
not re-exported here because it depends on the repository layer.
"""

from helpdesk.services.approval.exceptions import (
    AlreadyDecidedError,
    ApprovalValidationError,
    ApprovalWorkflowError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ResubmissionLimitExceeded,
)
from helpdesk.services.approval.guard import ResubmissionGuard
from helpdesk.services.approval.policy import ApprovalPolicy
from helpdesk.services.approval.projector import (
    TERMINAL_STATUSES,
    StatusProjection,
    TicketStatusProjector,
)
from helpdesk.services.approval.schemas import (
    AnyWithCapability,
    ApprovalLevel,
    ApprovalPhase,
    ApprovalRecord,
    ApprovalStatus,
    Approver,
    NotificationEvent,
    SpecificApprover,
    TicketStatus,
)

__all__ = [
    "AlreadyDecidedError",
    "ApprovalValidationError",
    "ApprovalWorkflowError",
    "ForbiddenError",
    "InvalidStateError",
    "NotFoundError",
    "ResubmissionLimitExceeded",
    "ResubmissionGuard",
    "ApprovalPolicy",
    "TERMINAL_STATUSES",
    "StatusProjection",
    "TicketStatusProjector",
    "AnyWithCapability",
    "ApprovalLevel",
    "ApprovalPhase",
    "ApprovalRecord",
    "ApprovalStatus",
    "Approver",
    "NotificationEvent",
    "SpecificApprover",
    "TicketStatus",
]
