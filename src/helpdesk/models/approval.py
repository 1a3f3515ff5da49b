"""Ticket approval record model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.models.base import Base, TimestampMixin


class TicketApproval(Base, TimestampMixin):
    """Approval gate table.

    One row per gate instance. Rows are decided at most once and never
    deleted; they form the approval audit trail of a ticket.
    """

    __tablename__ = "ticket_approvals"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign key
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id"), nullable=False, index=True
    )

    # Gate position
    approval_level: Mapped[str] = mapped_column(String(30), nullable=False)
    approval_pass: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False, index=True
    )

    # Who may act
    approver_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    approver_capability: Mapped[str] = mapped_column(
        String(100), default="tickets:approve", nullable=False
    )

    # Decision
    decided_by_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    routed_to_team_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("departments.id"), nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejected_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_ticket_approvals_ticket_level_status", "ticket_id", "approval_level", "status"),
        # At most one pending gate per ticket
        Index(
            "uq_ticket_approvals_one_pending",
            "ticket_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        CheckConstraint(
            "approval_level IN ('line_manager', 'head_of_department')",
            name="approval_level",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="status",
        ),
        CheckConstraint(
            "NOT (approved_at IS NOT NULL AND rejected_at IS NOT NULL)",
            name="single_decision",
        ),
        CheckConstraint(
            "status <> 'rejected' OR (comments IS NOT NULL AND comments <> '')",
            name="rejection_comments",
        ),
    )
