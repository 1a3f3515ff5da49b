"""Database infrastructure module."""

from helpdesk.infrastructure.database.session import (
    AsyncSessionLocal,
    get_async_engine,
    get_session_factory,
)

__all__ = [
    "AsyncSessionLocal",
    "get_async_engine",
    "get_session_factory",
]
