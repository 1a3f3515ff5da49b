"""Approval workflow errors.

All are business-rule violations: callers surface them, nothing retries them.
"""


class ApprovalWorkflowError(Exception):
    """Base class for approval workflow errors."""


class NotFoundError(ApprovalWorkflowError):
    """Ticket or approval record does not exist."""


class ForbiddenError(ApprovalWorkflowError):
    """Actor may not decide this gate."""


class AlreadyDecidedError(ApprovalWorkflowError):
    """Approval record is no longer pending."""

    def __init__(self, record_id: int, status: str):
        self.record_id = record_id
        self.status = status
        super().__init__(f"Approval {record_id} has already been {status}")


class InvalidStateError(ApprovalWorkflowError):
    """Ticket status does not allow the requested transition."""

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class ApprovalValidationError(ApprovalWorkflowError):
    """Request input failed a business validation rule."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class ResubmissionLimitExceeded(ApprovalWorkflowError):
    """Ticket has been rejected as many times as resubmission allows."""

    def __init__(self, ticket_id: int, rejected_count: int, ceiling: int):
        self.ticket_id = ticket_id
        self.rejected_count = rejected_count
        self.ceiling = ceiling
        super().__init__(
            f"Ticket {ticket_id} has been rejected {rejected_count} times. "
            f"Maximum resubmission limit ({ceiling}) reached."
        )
