"""
Database infrastructure configuration

SQLAlchemy async engine and session management.
"""

from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from transcript_desk.core.config import settings
from transcript_desk.core.logging import get_logger

logger = get_logger(__name__)


def build_engine(database_url: str = settings.database_url, **overrides: Any) -> AsyncEngine:
    """Create the async engine; SQLite gets no pool sizing."""
    kwargs: dict[str, Any] = {"echo": settings.db_echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(
            pool_size=20,
            max_overflow=40,
            pool_pre_ping=True,  # Automatically detect and disconnect invalid connections
        )
    kwargs.update(overrides)
    return create_async_engine(database_url, **kwargs)


engine = build_engine()

# Variable to override session in tests
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database session.
    Yields a session and closes it after use.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_models() -> None:
    """Create tables directly from metadata (development and tests only)"""
    from transcript_desk.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_db_connection():
    """Close database connection pool"""
    await engine.dispose()
