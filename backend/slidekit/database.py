"""
Database configuration (async SQLAlchemy, Postgres via asyncpg).
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from slidekit.config import get_settings
from slidekit.errors import ConfigurationError

logger = logging.getLogger(__name__)

_engine = None
_session_maker = None
_initialized = False


class Base(DeclarativeBase):
    pass


def get_engine():
    global _engine
    settings = get_settings()
    if _engine is None and settings.database_url:
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_pre_ping=True,
        )
        logger.info(f"Database engine created for: {settings.database_url.split('@')[-1][:50]}")
    return _engine


def get_session_maker():
    global _session_maker
    if _session_maker is None:
        engine = get_engine()
        if engine:
            _session_maker = async_sessionmaker(
                engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
    return _session_maker


async def init_db() -> bool:
    """Create tables. Returns False when no database is configured or reachable."""
    global _initialized
    if _initialized:
        return True

    engine = get_engine()
    if not engine:
        logger.warning("No database configured (DATABASE_URL is empty)")
        return False

    # Tables are registered on Base by importing the models
    from slidekit import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database init failed: {e}")
        return False

    _initialized = True
    logger.info("Database tables created")
    return True


async def dispose_engine():
    global _engine, _session_maker, _initialized
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
    _initialized = False


async def get_db():
    """Dependency for getting database session."""
    if not _initialized and not await init_db():
        raise ConfigurationError("Database initialization failed")

    session_maker = get_session_maker()
    if session_maker is None:
        raise ConfigurationError("Database not configured")

    async with session_maker() as session:
        yield session
