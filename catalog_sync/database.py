# catalog_sync/database.py

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from catalog_sync.core.config import get_settings

Base = declarative_base()


def normalize_database_url(database_url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg:// for async support"""
    if database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    if database_url.startswith('sqlite://'):
        database_url = database_url.replace('sqlite://', 'sqlite+aiosqlite://', 1)
    return database_url


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    database_url = normalize_database_url(database_url)
    if not database_url:
        raise ValueError("DATABASE_URL is not set in environment variables")

    if database_url.startswith('postgresql+asyncpg://'):
        return create_async_engine(
            database_url,
            echo=echo,
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800,
        )
    return create_async_engine(database_url, echo=echo)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False
    )


settings = get_settings()
engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
async_session = build_session_factory(engine)


@asynccontextmanager
async def get_session() -> AsyncSession:
    session = async_session()
    try:
        yield session
    finally:
        await session.close()


async def init_models(bind: AsyncEngine = None):
    """Create all tables. Used for SQLite deployments and tests."""
    from catalog_sync import models  # noqa: F401  registers the mappers

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
