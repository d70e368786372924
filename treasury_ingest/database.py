"""Database configuration and session management."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from treasury_ingest.config import Settings, settings
from treasury_ingest.logger import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def create_engine_from_settings(config: Settings | None = None) -> AsyncEngine:
    """Create the async engine for the configured database URL.

    Pool sizing only applies to server databases; SQLite URLs use the
    driver defaults.
    """
    config = config or settings
    kwargs: dict[str, object] = {"echo": config.database_echo or config.debug}
    if not config.database_url.startswith("sqlite"):
        kwargs.update(
            pool_pre_ping=True,
            pool_size=10,  # Max persistent connections
            max_overflow=20,  # Additional transient connections under load
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
    return create_async_engine(config.database_url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def session_scope(
    maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session and always close it."""
    async with maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables directly from the models.

    Deployed databases are managed by the Alembic migrations in
    ``migrations/``; this is for embedded SQLite stores and tests.
    """
    import treasury_ingest.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema created", url=engine.url.render_as_string(hide_password=True))
