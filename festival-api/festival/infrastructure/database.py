"""Database configuration and session management.

Provides the async SQLAlchemy engine and session factory used by the SQL
stores. The engine is created on first use so the in-memory backend
never opens a connection pool.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from festival.infrastructure.config import settings

# Base class for models
Base = declarative_base()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for a database URL.

    Args:
        url: SQLAlchemy URL, e.g. ``postgresql+asyncpg://...``.
        **kwargs: Extra engine options (poolclass, connect_args, ...).

    Returns:
        Configured AsyncEngine.
    """
    options = {"echo": settings.debug}
    if not url.startswith("sqlite"):
        options["pool_pre_ping"] = True
    options.update(kwargs)
    return create_async_engine(url, **options)


def get_engine() -> AsyncEngine:
    """Get the process-wide engine, creating it from settings on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(settings.database_url)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet.

    Production deployments run the Alembic migrations instead; this is
    used for local development and tests.
    """
    # Models must be imported so their tables are registered on Base.
    from festival.infrastructure import models  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
