"""Database session management."""

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from helpdesk.core.config import get_settings


@lru_cache
def get_async_engine() -> AsyncEngine:
    """Create (once) the asynchronous database engine."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=settings.debug,
    )


@lru_cache
def get_session_factory() -> sessionmaker:
    """Get the session factory bound to the application engine."""
    return sessionmaker(
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        bind=get_async_engine(),
        expire_on_commit=False,
    )


def AsyncSessionLocal() -> AsyncSession:
    """Open a new session on the application engine."""
    return get_session_factory()()
