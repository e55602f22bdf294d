"""
SQLAlchemy 2.0 async database configuration.

The audit store is a single append-only table; every component opens its own
short-lived AsyncSession from the shared session factory.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from edurisk.platform.settings import settings

# ==========================================
# SQLAlchemy 2.0 Declarative Base
# ==========================================


class Base(DeclarativeBase):
    """Base class for all database models using SQLAlchemy 2.0 declarative mapping."""

    pass


# ==========================================
# Engine and Session Management
# ==========================================

# Created lazily so importing models never opens a connection
_async_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    """Get or create the asynchronous engine."""
    global _async_engine
    if _async_engine is None:
        options: dict = {"echo": settings.database.echo}
        if not settings.database.is_sqlite:
            options.update(
                pool_size=settings.database.pool_size,
                max_overflow=settings.database.max_overflow,
                pool_timeout=settings.database.pool_timeout,
                pool_recycle=settings.database.pool_recycle,
                pool_pre_ping=settings.database.pool_pre_ping,
            )
        _async_engine = create_async_engine(settings.database.url, **options)
    return _async_engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the global async session factory (can be overridden for testing)."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
    return _async_session_maker


def set_session_factory(factory: async_sessionmaker[AsyncSession] | None) -> None:
    """Override the global session factory; ``None`` restores lazy creation."""
    global _async_session_maker
    _async_session_maker = factory


async def dispose_engine() -> None:
    """Close pooled connections held by the global engine."""
    global _async_engine, _async_session_maker
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_maker = None


# ==========================================
# Session Context Managers
# ==========================================


def session_scope(
    session: AsyncSession | None = None,
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> Any:
    """Context manager yielding ``session`` if given, otherwise a fresh one.

    A borrowed session is left open for its owner; a fresh session is closed
    on exit.
    """
    if session is not None:

        @asynccontextmanager
        async def borrowed() -> AsyncIterator[AsyncSession]:
            yield session

        return borrowed()

    return (factory or get_session_factory())()


async def get_async_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency for getting an async database session."""
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ==========================================
# Database Initialization
# ==========================================


async def create_all_tables_async(engine: AsyncEngine | None = None) -> None:
    """Create all tables in the database asynchronously."""
    # Ensure the audit models are registered on Base.metadata
    from edurisk.platform.audit import models  # noqa: F401

    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all_tables_async(engine: AsyncEngine | None = None) -> None:
    """Drop all tables from the database asynchronously. Use with caution!"""
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def check_database_health() -> bool:
    """Check if the database is accessible."""
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


__all__ = [
    "Base",
    "get_async_engine",
    "get_session_factory",
    "set_session_factory",
    "dispose_engine",
    "session_scope",
    "get_async_session",
    "create_all_tables_async",
    "drop_all_tables_async",
    "check_database_health",
]
