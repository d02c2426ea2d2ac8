# backend/chronicles/db.py
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker, create_async_engine)
from sqlalchemy.pool import StaticPool

from . import config


def _engine_options(database_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": False, "future": True}
    if ":memory:" in database_url:
        # Share the single in-memory connection across sessions
        options["connect_args"] = {"check_same_thread": False}
        options["poolclass"] = StaticPool
    return options


# Create async SQLAlchemy engine
engine = create_async_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
)


def make_session_factory(database_url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Build a separate engine + session factory (tests, CLI --database)."""
    other = create_async_engine(database_url, **_engine_options(database_url))
    return other, async_sessionmaker(other, expire_on_commit=False)


async def create_tables(target: AsyncEngine | None = None) -> None:
    """Create all tables (dev-time; production uses 'chronicles db upgrade')."""
    from .models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency to get async DB session
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
