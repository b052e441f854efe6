"""
ladder/database.py
Database configuration and startup initialization
"""
import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker

# Import Base from orm.base to avoid circular imports
from ladder.orm.base import Base
import ladder.orm  # noqa: F401  ensures all models are registered
from ladder.config.settings import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine with pool settings suited to the backend.

    In-memory SQLite uses a single static connection, so pool sizing is
    only applied to file-backed SQLite and server databases.
    """
    if "sqlite" in database_url.lower():
        if ":memory:" in database_url:
            return create_async_engine(database_url, echo=False, future=True)
        return create_async_engine(
            database_url,
            echo=False,
            future=True,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            connect_args={
                "timeout": 30.0,   # SQLite busy timeout in seconds
            }
        )

    # PostgreSQL: row locks (FOR UPDATE) are honored natively
    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        pool_recycle=3600,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = None, session_factory: async_sessionmaker = None):
    """
    Initialize database:
    1. Create tables if they don't exist
    2. Seed the global rule set if missing
    """
    from ladder.services.rules_service import ensure_global_rules

    bind = bind or engine
    session_factory = session_factory or AsyncSessionLocal

    logger.info("Initializing database...")
    logger.info(f"Database dialect: {bind.url.get_backend_name()}")
    if bind.url.get_backend_name() == "sqlite":
        logger.warning("Running on SQLite: round locks are enforced in-process only.")

    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with session_factory() as session:
            await ensure_global_rules(session)

        logger.info("✓ Database initialization complete")

    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise


async def close_db():
    """Close database connection"""
    await engine.dispose()
    logger.info("Database connection closed")


@asynccontextmanager
async def open_session(database_url: str = None):
    """
    Session on a short-lived engine, for CLI commands that run their own
    event loop.
    """
    own_engine = build_engine(database_url or DATABASE_URL)
    factory = build_session_factory(own_engine)
    try:
        async with factory() as session:
            yield session
    finally:
        await own_engine.dispose()
