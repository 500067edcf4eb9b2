"""Database setup shared by tasks."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from paylink.config.settings import Settings


def create_task_engine(settings: Settings) -> AsyncEngine:
    """Engine for task workers; NullPool keeps connections off shared loops."""
    return create_async_engine(
        settings.database_url,
        echo=False,
        poolclass=NullPool,
    )


def create_task_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session maker for task workers."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
