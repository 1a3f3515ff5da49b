"""Translation of workflow errors to HTTP responses."""

from fastapi import HTTPException, status

from helpdesk.services.approval.exceptions import (
    AlreadyDecidedError,
    ApprovalValidationError,
    ApprovalWorkflowError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ResubmissionLimitExceeded,
)


def http_error(e: ApprovalWorkflowError) -> HTTPException:
    """Build the HTTPException for a workflow error.

    @param e - Workflow error raised by the service
    @returns HTTPException to raise from the route handler
    """
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, AlreadyDecidedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(e), "status": e.status},
        )
    if isinstance(e, InvalidStateError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(e), "current_status": e.current_status},
        )
    if isinstance(e, ResubmissionLimitExceeded):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "rejected_count": e.rejected_count,
                "ceiling": e.ceiling,
            },
        )
    if isinstance(e, ApprovalValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[{"loc": ["body", e.field], "msg": str(e), "type": "value_error"}],
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
