"""Repository layer for database operations.

This module provides async repository implementations using SQLAlchemy 2.x.
All repositories follow the Repository pattern; none of them commit.
"""

from helpdesk.repositories.approval import ApprovalRecordRepository
from helpdesk.repositories.base import BaseRepository
from helpdesk.repositories.directory import UserRepository
from helpdesk.repositories.ticket import (
    CategoryRepository,
    TicketHistoryRepository,
    TicketRepository,
)

__all__ = [
    "BaseRepository",
    "ApprovalRecordRepository",
    "CategoryRepository",
    "TicketHistoryRepository",
    "TicketRepository",
    "UserRepository",
]
