"""Database session management and connection handling."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from .config import Settings, settings


def build_engine(config: Settings) -> AsyncEngine:
    """
    Create the async engine with a bounded connection pool.

    Callers wait at most ``database_pool_timeout`` seconds for a pooled
    connection instead of growing the pool past ``pool_size + max_overflow``.
    """
    connect_args = {}
    if config.database_url.startswith("postgresql+asyncpg"):
        connect_args["command_timeout"] = config.database_command_timeout

    return create_async_engine(
        config.database_url,
        echo=config.database_echo,
        pool_size=config.database_pool_size,
        max_overflow=config.database_max_overflow,
        pool_timeout=config.database_pool_timeout,
        pool_pre_ping=True,  # Verify connections before using
        connect_args=connect_args,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Create a session factory bound to ``bind``."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings)

AsyncSessionLocal = build_session_factory(engine)

# Base class for all ORM models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a request-scoped database session.

    Services commit their own units of work; anything still pending when
    the request finishes is committed here, and rolled back on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context():
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        async with get_db_context() as db:
            # use db session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create database tables that do not exist yet."""
    # Models must be imported so their tables are registered on Base.metadata
    from image_catalog.models import database  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
