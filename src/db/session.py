"""Async SQLAlchemy engine and session factory."""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from models.base import Base


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for the record store."""
    options: dict = {"echo": False}
    if not database_url.startswith("sqlite"):
        options["pool_pre_ping"] = True
    return create_async_engine(database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """
    Create tables directly from the models.

    Used in dev mode and tests; deployed databases are managed by alembic.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
