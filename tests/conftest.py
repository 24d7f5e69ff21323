"""
Pytest Configuration and Fixtures

Every test gets its own SQLite database (aiosqlite) and a UnitOfWork
provider bound to it. No external services are needed.
"""
import os
import sys
import tempfile
import uuid

import pytest
import pytest_asyncio

os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "finalization-import.db")
)
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Add services/core to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'services', 'core'))

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from database import Base
import models  # noqa: F401
from infrastructure.uow import create_uow_provider


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'finalization.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest.fixture
def uow_provider(session_factory):
    return create_uow_provider(session_factory)


@pytest_asyncio.fixture
async def user_id(session_factory):
    """An existing user row (schedule updates need one)"""
    uid = uuid.uuid4()
    async with session_factory() as session:
        session.add(models.User(id=uid))
        await session.commit()
    return uid


@pytest.fixture
def count_rows(session_factory):
    async def _count(model, *criteria) -> int:
        async with session_factory() as session:
            stmt = select(func.count()).select_from(model)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return (await session.execute(stmt)).scalar_one()
    return _count


@pytest.fixture
def fetch_all(session_factory):
    async def _fetch(model, *criteria) -> list:
        async with session_factory() as session:
            stmt = select(model)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return list((await session.execute(stmt)).scalars().all())
    return _fetch


@pytest.fixture
def scenario_payload():
    """
    Two operations, one numeric metric, one habit, one metric_based goal,
    a schedule. Ids are client-assigned.
    """
    return {
        "operations": [
            {"id": "op-health", "name": "Health", "description": "Body and mind"},
            {"id": "op-work", "name": "Work", "description": "Career"},
        ],
        "metrics": [
            {
                "id": "m-sleep",
                "name": "Sleep",
                "unit": "hours",
                "optimal_value": 8,
                "minimum_value": 6,
                "operator": "at_least",
                "linked_operation": "op-health",
            }
        ],
        "habits": [
            {"id": "h-meditate", "name": "Meditate", "linked_operation": "op-health"}
        ],
        "goals": [
            {
                "id": "g-sleep",
                "title": "Sleep 8h/night",
                "goal_type": "metric_based",
                "linked_metric_name": "Sleep",
                "target_value": 8,
                "initial_value": 6,
                "operation_id": "op-health",
            }
        ],
        "schedule": {"wakeHour": 6, "sleepHour": 23},
    }
