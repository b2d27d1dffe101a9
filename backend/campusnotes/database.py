"""
CampusNotes Backend: Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   Creates an async engine with connection pooling, provides a session
       dependency that commits on success and rolls back on error.
Who:   Used by route handlers via FastAPI's dependency injection system,
       and by the reconciliation CLI through `async_session_factory`.
When:  Engine is created at module import; sessions are created per-request.

Connection Pooling:
    pool_size / max_overflow / pool_pre_ping come from settings and are only
    passed for server databases. SQLite (used by the test-suite) keeps the
    driver's default pool.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from campusnotes.config import Settings, settings


def engine_options(config: Settings) -> Dict[str, Any]:
    """Keyword arguments for create_async_engine for the configured URL."""
    options: Dict[str, Any] = {"echo": config.log_level == "DEBUG"}
    if not config.database_url.startswith("sqlite"):
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_pre_ping=config.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


def build_engine(config: Settings) -> AsyncEngine:
    return create_async_engine(config.database_url, **engine_options(config))


# ── Engine & Session Factory ──────────────────────────────────────────────
engine = build_engine(settings)

# expire_on_commit=False: ORM objects stay readable after commit, which the
# upload and vote flows rely on when building responses.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata feeds Alembic."""
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits whatever the handler left open
        4. On error: rolls back
        5. Always: closes the session (returns connection to pool)

    Services that need explicit transaction boundaries (upload, vote) commit
    or roll back themselves; the trailing commit is then a no-op.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Closes all pooled connections. Called during application shutdown."""
    await engine.dispose()
