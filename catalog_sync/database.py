# catalog_sync/database.py

from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from catalog_sync.core.config import get_settings

Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def _normalise_url(database_url: str) -> str:
    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if database_url.startswith('postgresql://'):
        return database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        database_url = get_settings().DATABASE_URL
        if not database_url:
            raise ValueError("DATABASE_URL is not set in environment variables")
        database_url = _normalise_url(database_url)
        if database_url.startswith("sqlite"):
            _engine = create_async_engine(database_url, echo=False, future=True)
        else:
            _engine = create_async_engine(
                database_url,
                echo=False,
                future=True,
                pool_size=10,
                max_overflow=20,
                pool_timeout=30,
                pool_recycle=1800,
            )
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


def configure_session_factory(factory: async_sessionmaker) -> None:
    """Point the module at an already-built session factory (tests, embedded use)."""
    global _session_factory
    _session_factory = factory


@asynccontextmanager
async def get_session() -> AsyncSession:
    session = get_session_factory()()
    try:
        yield session
    finally:
        await session.close()
