"""
Async database engine and session management.

expire_on_commit=False keeps loaded rows usable after commit, which the
webhook service relies on when it hands records back to callers.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from orderhub.config import settings


def create_engine(database_url: str | None = None):
    """Create an async engine for the given URL (defaults to settings)."""
    return create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
    )


def create_session_factory(bind) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to an engine."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine()
AsyncSessionLocal = create_session_factory(engine)
