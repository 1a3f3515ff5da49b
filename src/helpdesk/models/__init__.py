"""Database models for the help-desk approval service."""

from helpdesk.models.approval import TicketApproval
from helpdesk.models.base import Base, TimestampMixin
from helpdesk.models.directory import Department, User
from helpdesk.models.ticket import Ticket, TicketCategory, TicketHistory

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Directory
    "Department",
    "User",
    # Tickets
    "Ticket",
    "TicketCategory",
    "TicketHistory",
    # Approvals
    "TicketApproval",
]
