# backend/app/db/session.py
"""
Async database session management for SQLAlchemy.

- asyncpg for PostgreSQL (production)
- aiosqlite for SQLite (local development and the test suite)

The one-time code ledger relies on conditional UPDATE statements whose
rowcount is checked; both drivers report accurate rowcounts for them.
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool, StaticPool

from backend.app.core.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create and configure an async SQLAlchemy engine for ``url``.

    SQLite:
    - in-memory databases share a single connection (StaticPool), otherwise
      every checkout would see an empty database
    - file databases use NullPool
    - check_same_thread=False for async compatibility

    PostgreSQL:
    - AsyncAdaptedQueuePool, pool_size=5, max_overflow=10
    - pool_pre_ping=True and pool_recycle=300 against idle-connection drops
    """
    if url.startswith("sqlite"):
        in_memory = ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:")
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool if in_memory else NullPool,
            connect_args={"check_same_thread": False},
        )

    return create_async_engine(
        url,
        echo=echo,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    expire_on_commit=False: services keep using ORM objects after commit.
    autoflush=False: explicit flush control, no surprise queries.
    """
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Global async engine instance, created once at module load
# ─────────────────────────────────────────────────────────────────────────────
engine: AsyncEngine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency generator for database sessions, one per request.

    Services commit explicitly. Anything left uncommitted when the request
    fails is rolled back here.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
