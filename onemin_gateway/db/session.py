"""
Database Session Management Module

Provides asynchronous database session management, supporting SQLite and PostgreSQL.
Only used when KV_STORE_TYPE is "database".
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from onemin_gateway.config import Settings, get_settings

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create the asynchronous database engine

    echo=True prints SQL statements in DEBUG mode.
    """
    settings = settings or get_settings()
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        # SQLite specific configuration
        connect_args={"check_same_thread": False}
        if settings.DATABASE_TYPE == "sqlite"
        else {},
    )


async def init_db(settings: Optional[Settings] = None) -> async_sessionmaker[AsyncSession]:
    """
    Initialize Database

    Creates the engine and all table structures. Called on application startup.

    Returns:
        async_sessionmaker: Session factory bound to the engine
    """
    global _engine, _session_factory
    from onemin_gateway.db.models import Base

    if _engine is None:
        _engine = create_engine(settings)
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Do not expire objects after commit, avoids extra queries
            autocommit=False,
            autoflush=False,
        )

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return _session_factory


async def close_db() -> None:
    """Dispose of the engine on shutdown"""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
