# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy engine so database I/O never blocks the event loop that
# is also relaying streamed LLM fragments.
#
# SESSION LIFECYCLE:
# Two session patterns exist in this codebase:
#
# 1. Dependency-injected (`get_async_session` via Depends):
#    Used by plain request/response routes (records, users). Auto-commits
#    when the handler returns, rolls back on exception.
#
# 2. Self-managed (`session_factory()` directly):
#    Used by the QA storage layer. Each placeholder insert and each answer
#    update runs in its own short session and commits explicitly, so a
#    streaming request never holds a connection open while it waits on the
#    upstream provider.
#
# The engine and session factory are created by `create_app()` from the
# configured URL and kept on `app.state`.
# =============================================================================

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from qa_service.db.models import Base


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build the async engine for `database_url`.

    SQLite uses SQLAlchemy's default pool for aiosqlite; server databases get
    a small bounded pool (5 persistent + 10 overflow connections).
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to `engine`.

    expire_on_commit=False keeps loaded attributes readable after commit,
    which route handlers rely on when serialising ORM rows.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The session is committed when the handler returns and rolled back if it
    raises.
    """
    factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
