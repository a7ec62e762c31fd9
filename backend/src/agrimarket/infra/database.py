"""Async database engine and session management."""

import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from agrimarket.app.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


settings = get_settings()


def _is_memory(database_url: str) -> bool:
    return ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:")


def build_engine(database_url: str, *, pool_size: int = 5, max_overflow: int = 10):
    """Create an async engine, tuned per driver."""
    is_sqlite = "sqlite" in database_url
    connect_args = {}
    if is_sqlite:
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30  # Wait up to 30s for write lock (default 5s)

    engine_kwargs = {
        "echo": False,
        "connect_args": connect_args,
    }
    if is_sqlite and _is_memory(database_url):
        # One shared connection, otherwise every checkout sees an empty database
        engine_kwargs["poolclass"] = StaticPool
    if not is_sqlite:
        engine_kwargs["pool_size"] = pool_size
        engine_kwargs["max_overflow"] = max_overflow
        engine_kwargs["pool_pre_ping"] = True

    engine = create_async_engine(database_url, **engine_kwargs)

    if is_sqlite:
        # SQLite ignores FOREIGN KEY clauses unless asked per connection
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: yield an async database session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """FastAPI dependency: the factory used for out-of-band writes (audit)."""
    return async_session


async def check_connection(session: AsyncSession) -> None:
    """Round-trip a trivial query; raises if the database is unreachable."""
    await session.execute(text("SELECT 1"))


async def init_db(target_engine=None, session_factory=None) -> None:
    """Create all tables and seed the reference catalogs (for local dev)."""
    # Ensure models are registered with Base.metadata
    import agrimarket.domain.models  # noqa: F401
    from agrimarket.services.reference_service import seed_reference_data

    target_engine = target_engine or engine
    session_factory = session_factory or async_session

    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # WAL mode allows concurrent reads + single writer
    if "sqlite" in str(target_engine.url) and ":memory:" not in str(target_engine.url):
        async with target_engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA busy_timeout=30000"))

    async with session_factory() as session:
        seeded = await seed_reference_data(session)
        if seeded:
            logger.info("Seeded reference data: %s", seeded)
