"""Ticket, category and history models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.models.base import Base, TimestampMixin


class TicketCategory(Base, TimestampMixin):
    """Ticket category table with approval policy flags."""

    __tablename__ = "ticket_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_team_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("departments.id"), nullable=True
    )

    # Approval policy
    requires_approval: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    requires_hod_approval: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    hod_approval_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )


class Ticket(Base, TimestampMixin):
    """Ticket table."""

    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_number: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default="open", nullable=False, index=True
    )
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    approval_phase: Mapped[str] = mapped_column(
        String(30), default="not_required", nullable=False
    )

    # Relations
    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("ticket_categories.id"), nullable=True, index=True
    )
    requester_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    assigned_team_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("departments.id"), nullable=True
    )

    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'assigned', 'in_progress', 'pending', "
            "'resolved', 'closed', 'cancelled')",
            name="status",
        ),
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'critical')",
            name="priority",
        ),
        CheckConstraint(
            "approval_phase IN ('not_required', 'awaiting_approval', "
            "'approved', 'rejected')",
            name="approval_phase",
        ),
    )


class TicketHistory(Base):
    """Append-only ticket history table."""

    __tablename__ = "ticket_histories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id"), nullable=False, index=True
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    field_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
