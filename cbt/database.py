"""
cbt/database.py
Database configuration: async engine, session factory, table creation
"""
import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from cbt.config import settings
# Import Base from orm.base to avoid circular imports
from cbt.orm.base import Base
import cbt.orm  # ensures all models are registered

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")


def build_engine(url: str = DATABASE_URL):
    """Create the async engine with pool settings suited to the dialect."""
    if "sqlite" in url.lower():
        return create_async_engine(
            url,
            echo=settings.SQL_ECHO,
            future=True,
            connect_args={
                "timeout": 30.0,   # SQLite busy timeout in seconds
            }
        )
    return create_async_engine(
        url,
        echo=settings.SQL_ECHO,
        future=True,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        pool_recycle=3600,
    )


def build_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """
    Dependency for components that outlive a request (exam sessions and their
    clocks open a fresh database session per operation).
    """
    return AsyncSessionLocal


async def init_db(bind=None):
    """Create all tables that do not exist yet."""
    bind = bind or engine
    logger.info("Initializing database...")
    try:
        logger.info(f"Database dialect: {bind.url.get_backend_name()}")
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✓ Database initialization complete")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise


async def close_db():
    """Close database connection"""
    await engine.dispose()
    logger.info("Database connection closed")
