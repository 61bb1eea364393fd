from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine, async_sessionmaker
from .config import settings
from typing import AsyncGenerator, List, Optional
import logging

logger = logging.getLogger(__name__)

# Create async engine (only if database_url is provided)
engine: Optional[AsyncEngine] = None
if settings.database_url:
    try:
        engine = create_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            pool_recycle=300,
        )
    except Exception as e:
        logger.error("Failed to create database engine: %s", e)
        engine = None

# Create async session factory (only if engine exists)
AsyncSessionLocal: Optional[async_sessionmaker] = None
if engine:
    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def is_database_configured() -> bool:
    return AsyncSessionLocal is not None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    if not AsyncSessionLocal:
        raise RuntimeError(
            "Database not configured. Please set DATABASE_URL in your .env file. "
            "Get it from Supabase Dashboard → Settings → Database → Connection string"
        )
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_optional_db() -> AsyncGenerator[Optional[AsyncSession], None]:
    """Dependency yielding a session, or None when the data store is not configured"""
    if not AsyncSessionLocal:
        yield None
        return
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: Optional[AsyncEngine] = None) -> List[str]:
    """Create missing tables and return the names of all managed tables"""
    target = bind or engine
    if not target:
        raise RuntimeError("Database engine not initialized. Set DATABASE_URL in .env")
    # Import all models to ensure they are registered
    from billing_api.models import Base
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return sorted(Base.metadata.tables.keys())


async def list_missing_tables(db: AsyncSession) -> List[str]:
    """Names of managed tables that do not exist yet"""
    from billing_api.models import Base

    def _missing(sync_conn) -> List[str]:
        existing = set(inspect(sync_conn).get_table_names())
        return sorted(name for name in Base.metadata.tables if name not in existing)

    conn = await db.connection()
    return await conn.run_sync(_missing)
