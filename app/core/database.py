"""Async database engine and session management."""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
import structlog

from app.core.config import settings

logger = structlog.get_logger()

Base = declarative_base()


def build_engine(database_url: str):
    """Create an async engine suited to the configured backend."""
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)

    if database_url.startswith("sqlite"):
        # SQLite connections are cheap; pooling them across event loops is not
        return create_async_engine(database_url, poolclass=NullPool)

    return create_async_engine(
        database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def build_sessionmaker(bind) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_sessionmaker(engine)


async def init_db():
    """Create tables that do not exist yet."""
    # Register mappers before create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized", backend=engine.url.get_backend_name())


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session scoped to one request."""
    async with AsyncSessionLocal() as session:
        yield session
