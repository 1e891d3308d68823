"""Async SQLAlchemy engine, session factory, and schema bootstrap."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from payflow.db.models import Base


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine with pool settings suited to the backend."""
    engine_kwargs: dict = {"echo": echo}
    if database_url.startswith("postgresql"):
        engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    elif "sqlite" in database_url:
        # StaticPool ensures all connections share the same in-memory database
        engine_kwargs.update(
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

