"""
Async database setup with SQLAlchemy and aiosqlite.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import text

from narrator.config import Settings, ensure_directories
from narrator.models import Base


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for the job store."""
    return create_async_engine(
        database_url,
        echo=False,
        future=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory shared by the job store and request handlers."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def enable_wal_mode(engine: AsyncEngine):
    """Enable WAL mode for SQLite concurrent read/write access."""
    if engine.dialect.name != 'sqlite':
        return
    async with engine.begin() as conn:
        await conn.execute(text('PRAGMA journal_mode=WAL'))
        await conn.execute(text('PRAGMA synchronous=NORMAL'))


async def init_db(engine: AsyncEngine, settings: Settings):
    """Initialize database - create tables if they don't exist."""
    ensure_directories(settings)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Enable WAL mode after tables are created
    await enable_wal_mode(engine)


async def close_db(engine: AsyncEngine):
    """Close database connections."""
    await engine.dispose()
