"""
Database engine configuration and session management.

Current: SQLite (async with aiosqlite)
Future: PostgreSQL (switch to asyncpg)

The permission store only ever sees an AsyncSession; swapping the URL in
DATABASE_URL is enough to move to another backend.
"""
from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from rbac.core import config


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine, using NullPool for SQLite files."""
    return create_async_engine(
        url,
        # NullPool for SQLite to avoid connection pool issues
        poolclass=NullPool if url.startswith("sqlite") else None,
        echo=False,  # Set to True for SQL query logging during development
        future=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(config.SQLALCHEMY_DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    
    The permission store commits its own writes; anything left pending by a
    route is committed here, and rolled back if the route raised.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(bind: AsyncEngine | None = None):
    """
    Initialize database tables.
    Call this on application startup to create all tables.
    """
    from rbac.core.database.base import Base
    
    # Import all models to ensure they're registered with SQLAlchemy
    from rbac.features.permissions.models import Permission  # noqa: F401
    
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
