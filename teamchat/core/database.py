"""Async engine, session factory and the request-scoped session dependency."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from teamchat.core.config import Settings, get_settings

settings = get_settings()


def engine_options(config: Settings) -> dict[str, Any]:
    """Pool options for the configured backend.

    SQLite (local runs) uses a single-connection pool that rejects sizing
    arguments, so those are only passed to server databases.
    """
    options: dict[str, Any] = {"echo": config.db_echo}
    if make_url(config.database_url).get_backend_name() != "sqlite":
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings))

# Shared by HTTP requests and the realtime gateway.
async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create chat tables when missing. Deployments run the Alembic migration."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
