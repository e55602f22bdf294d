"""
Shared fixtures for the EduRisk audit test suite.

Every test gets its own file-based SQLite database under ``tmp_path``. The
global session factory is pointed at it so code paths that do not take an
explicit factory (router, retention task) hit the same store.
"""

import os
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

# Configure the environment before any platform module reads settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./pytest_audit.sqlite")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from edurisk.platform.audit.models import ActorRole, ActorSnapshot, AuditEvent, utcnow
from edurisk.platform.db import Base, set_session_factory


@pytest_asyncio.fixture
async def async_db_engine(tmp_path):
    """Async engine on a fresh SQLite file with the schema created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'audit.sqlite'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_db_engine):
    factory = async_sessionmaker(
        bind=async_db_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    set_session_factory(factory)
    yield factory
    set_session_factory(None)


@pytest_asyncio.fixture
async def async_db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def unreachable_session_factory(tmp_path):
    """Session factory whose database cannot be opened."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nested' / 'audit.sqlite'}",
        poolclass=NullPool,
    )
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def teacher() -> ActorSnapshot:
    return ActorSnapshot(
        id="teacher-42",
        role=ActorRole.TEACHER,
        name="Asha Verma",
        email="asha.verma@school.example",
    )


@pytest.fixture
def counselor() -> ActorSnapshot:
    return ActorSnapshot(
        id="counselor-7",
        role=ActorRole.COUNSELOR,
        name="Ravi Menon",
        email="ravi.menon@school.example",
    )


@pytest.fixture
def student() -> dict[str, Any]:
    return {
        "id": "student-1001",
        "first_name": "Meera",
        "last_name": "Nair",
        "class_id": "class-9b",
        "risk_level": "High",
    }


def make_event(
    *,
    actor: ActorSnapshot | None = None,
    hours_ago: float = 0,
    **overrides: Any,
) -> AuditEvent:
    """Build an ``AuditEvent`` row with sensible defaults and a past timestamp."""
    actor = actor or ActorSnapshot(
        id="admin-1", role=ActorRole.ADMIN, name="Admin", email="admin@school.example"
    )
    fields: dict[str, Any] = {
        "actor_id": actor.id,
        "actor_role": actor.role,
        "actor_name": actor.name,
        "actor_email": actor.email,
        "action": "STUDENT_VIEWED",
        "description": "Viewed student profile",
        "timestamp": utcnow() - timedelta(hours=hours_ago),
    }
    fields.update(overrides)
    return AuditEvent(**fields)


@pytest.fixture
def insert_events(session_factory):
    """Persist prepared rows directly, bypassing the recorder."""

    async def _insert(events: Iterable[AuditEvent]) -> list[AuditEvent]:
        rows = list(events)
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows

    return _insert


@pytest.fixture
def event_factory():
    return make_event
