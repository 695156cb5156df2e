"""Database configuration and session management."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from warden.config.settings import Settings, get_settings
from warden.db.models import Base

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create an async engine from settings.

    Pool sizing is skipped for SQLite and in the test environment.
    """
    settings = settings or get_settings()
    kwargs: dict = {"echo": settings.DEBUG}
    if settings.ENVIRONMENT == "test" or settings.DATABASE_URL.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    else:
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return create_async_engine(settings.DATABASE_URL, **kwargs)


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get the process-wide engine, creating it from ``settings`` on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine(settings)
    return _engine


def get_sessionmaker(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(settings), class_=AsyncSession, expire_on_commit=False
        )
    return _sessionmaker


async def init_db(create_schema: bool = False) -> None:
    """Verify database connectivity.

    Called during application startup when the SQL role store is in use.
    With ``create_schema`` missing tables are created; production schemas
    are managed outside the service.
    """
    async with get_engine().begin() as conn:
        await conn.execute(text("SELECT 1"))
        if create_schema:
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections gracefully."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None

