# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy Engine
# FastAPI is an async framework, so chat history is read and written with
# SQLAlchemy's async engine (asyncpg driver for PostgreSQL). All queries
# use `await`, and nothing blocks the event loop while agents run.
#
# DESIGN DECISION: Lazy initialization.
# The engine is created on first use, not at import time. With
# HISTORY_BACKEND=memory (dev, tests) no database driver is ever loaded
# and no connection pool is opened.
#
# COMMIT POLICY:
# session_scope() commits when the block exits cleanly and rolls back on
# exception. SqlChatHistory opens one short scope per operation, so a
# failed write never leaves a transaction open across an agent call.
# =============================================================================

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from chatmesh.config import settings

_async_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# - echo=settings.debug: logs every SQL statement in debug mode
# - pool_size / max_overflow: sized for a single API worker
# - SQLite URLs (tests) don't take pool arguments
# ---------------------------------------------------------------------------


def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """Lazily create and cache the async engine."""
    global _async_engine
    if _async_engine is None:
        url = database_url or settings.database_url
        kwargs: dict = {"echo": settings.debug}
        if not url.startswith("sqlite"):
            kwargs.update(pool_size=5, max_overflow=10)
        _async_engine = create_async_engine(url, **kwargs)
    return _async_engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to the shared engine.

    expire_on_commit=False keeps loaded rows readable after commit;
    otherwise attribute access would trigger a lazy load outside the
    session, which fails in async code.
    """
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a transactional session.

    Usage:
        async with session_scope() as session:
            session.add(row)
        # committed here, or rolled back if the block raised
    """
    factory = factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close pooled connections (called from the app lifespan on shutdown)."""
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
