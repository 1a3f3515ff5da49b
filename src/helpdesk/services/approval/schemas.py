"""Approval workflow schemas."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApprovalLevel(str, Enum):
    """Approval gate levels, in gate order."""

    LINE_MANAGER = "line_manager"
    HEAD_OF_DEPARTMENT = "head_of_department"


class ApprovalStatus(str, Enum):
    """Status of a single approval gate."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TicketStatus(str, Enum):
    """Operational ticket status."""

    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ApprovalPhase(str, Enum):
    """Where a ticket stands in the approval workflow, separate from its status."""

    NOT_REQUIRED = "not_required"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationEvent(str, Enum):
    """Workflow notification event types."""

    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"


class ResolverKind(str, Enum):
    """How a gate's approver is looked up."""

    REPORTING_MANAGER = "reporting_manager"
    DEPARTMENT_HEAD = "department_head"


# ---------------------------------------------------------------------------
# Approver variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpecificApprover:
    """A named user is expected to act on the gate."""

    user_id: int


@dataclass(frozen=True)
class AnyWithCapability:
    """Any user holding the capability may act; checked at decision time."""

    capability: str


Approver = Union[SpecificApprover, AnyWithCapability]


# ---------------------------------------------------------------------------
# Policy inputs / outputs
# ---------------------------------------------------------------------------


class CategoryApprovalPolicy(BaseModel):
    """Approval configuration of a ticket category."""

    model_config = ConfigDict(frozen=True)

    category_id: int = Field(..., description="Category ID")
    requires_approval: bool = Field(default=True, description="Line Manager gate required")
    requires_hod_approval: bool = Field(
        default=False, description="Head of Department gate required"
    )
    hod_approval_threshold: Decimal | None = Field(
        None, ge=0, description="Cost at or above which both gates are required"
    )
    default_team_id: int | None = Field(None, description="Team tickets route to")


class TicketSnapshot(BaseModel):
    """The ticket facts the approval policy decides on."""

    model_config = ConfigDict(frozen=True)

    ticket_id: int = Field(..., description="Ticket ID")
    priority: str = Field(default="medium", description="Ticket priority")
    category_id: int | None = Field(None, description="Category ID")
    requester_id: int = Field(..., description="Requester user ID")
    requester_department_id: int | None = Field(None, description="Requester department")
    assigned_team_id: int | None = Field(None, description="Currently assigned team")
    estimated_cost: Decimal | None = Field(None, description="Estimated cost")
    requester_can_auto_approve: bool = Field(
        default=False, description="Requester holds the auto-approve capability"
    )


class ApproverResolver(BaseModel):
    """Description of how to find a gate's approver.

    ``department_ids`` are tried in order for DEPARTMENT_HEAD lookups.
    """

    model_config = ConfigDict(frozen=True)

    kind: ResolverKind
    user_id: int | None = None
    department_ids: tuple[int, ...] = ()


class GateSpec(BaseModel):
    """One gate the policy requires."""

    model_config = ConfigDict(frozen=True)

    level: ApprovalLevel
    sequence: int = Field(..., ge=1)
    resolver: ApproverResolver


# ---------------------------------------------------------------------------
# API models
# ---------------------------------------------------------------------------


class ApprovalRecord(BaseModel):
    """Approval gate as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Record ID")
    ticket_id: int = Field(..., description="Ticket ID")
    approval_level: ApprovalLevel = Field(..., description="Gate level")
    approval_pass: int = Field(..., description="Approval pass number")
    sequence: int = Field(..., description="Position within the pass")
    status: ApprovalStatus = Field(..., description="Gate status")
    approver_id: int | None = Field(None, description="Expected approver")
    approver_capability: str = Field(..., description="Capability for open gates")
    decided_by_id: int | None = Field(None, description="User who decided")
    comments: str | None = Field(None, description="Decision comments")
    routed_to_team_id: int | None = Field(None, description="Routing override")
    approved_at: datetime | None = Field(None, description="Approval time")
    rejected_at: datetime | None = Field(None, description="Rejection time")
    created_at: datetime = Field(..., description="Created timestamp")


class TicketSummary(BaseModel):
    """Ticket state after a workflow operation."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Ticket ID")
    ticket_number: str = Field(..., description="Ticket number")
    subject: str = Field(..., description="Subject")
    status: TicketStatus = Field(..., description="Operational status")
    approval_phase: ApprovalPhase = Field(..., description="Approval phase")
    priority: str = Field(..., description="Priority")
    category_id: int | None = Field(None, description="Category ID")
    requester_id: int = Field(..., description="Requester ID")
    assigned_team_id: int | None = Field(None, description="Assigned team")


class ApproveRequest(BaseModel):
    """Request body for approving a gate."""

    comments: str | None = Field(None, max_length=1000, description="Optional comments")
    routed_to_team_id: int | None = Field(
        None, description="Team to route the ticket to on final approval"
    )


class RejectRequest(BaseModel):
    """Request body for rejecting a gate."""

    comments: str = Field(..., min_length=1, max_length=1000, description="Rejection reason")

    @field_validator("comments")
    @classmethod
    def comments_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("comments must not be blank")
        return value


class ResubmissionStatus(BaseModel):
    """Resubmission allowance of a ticket."""

    ticket_id: int = Field(..., description="Ticket ID")
    rejected_count: int = Field(..., ge=0, description="Rejections recorded so far")
    ceiling: int = Field(..., ge=1, description="Rejections allowed")
    remaining: int = Field(..., description="Resubmissions still allowed")
