"""
Unit of Work Pattern + Repositories - Infrastructure Layer
=========================================================

Store primitives used by the finalization pipeline: bulk insert returning
rows in submission order, per-row update, upsert, select and delete.
Every primitive runs inside a short UnitOfWork; there is no transaction
spanning a whole finalization run.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import (
    ClaimStatus,
    DraftClaim,
    FunnelEvent,
    Goal,
    Metric,
    OnboardingState,
    Operation,
    OperationHabit,
    Subgoal,
    User,
)


class UnitOfWork:
    """
    Thin Unit of Work: one session, one transaction.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            rows = await uow.operations.bulk_insert(uow.session, payload)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self.operations = OperationRepository()
        self.metrics = MetricRepository()
        self.goals = GoalRepository()
        self.subgoals = SubgoalRepository()
        self.operation_habits = OperationHabitRepository()
        self.users = UserRepository()
        self.onboarding = OnboardingStateRepository()
        self.events = FunnelEventRepository()
        self.claims = DraftClaimRepository()

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit or rollback, then close the session"""
        try:
            if exc_type is None:
                if self._session:
                    await self._session.commit()
            else:
                if self._session:
                    await self._session.rollback()
        finally:
            if self._session:
                await self._session.close()
                self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError(
                "Session not available. Use 'async with UnitOfWork() as uow:' pattern."
            )
        return self._session


class BaseRepository:
    """CRUD primitives shared by every table"""

    model = None

    async def bulk_insert(self, session, rows: List[dict]) -> list:
        """
        Insert rows and return the ORM objects in submission order.

        The returned list is positionally aligned with `rows`; callers rely
        on that to map client ids onto generated ids.
        """
        objects = [self.model(**row) for row in rows]
        session.add_all(objects)
        await session.flush()  # Flush to get generated IDs
        return objects

    async def insert(self, session, **fields):
        obj = self.model(**fields)
        session.add(obj)
        await session.flush()
        return obj

    async def get(self, session, obj_id):
        stmt = select(self.model).where(self.model.id == obj_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, session, user_id: UUID) -> list:
        stmt = select(self.model).where(self.model.user_id == user_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def delete_many(self, session, ids: Iterable[UUID]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        stmt = (
            delete(self.model)
            .where(self.model.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount


class OperationRepository(BaseRepository):
    model = Operation

    async def list_for_user(self, session, user_id: UUID) -> list:
        stmt = (
            select(Operation)
            .where(Operation.user_id == user_id)
            .order_by(Operation.display_order)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def set_metric(self, session, operation_id: UUID, metric_id: UUID) -> int:
        stmt = (
            update(Operation)
            .where(Operation.id == operation_id)
            .values(metric_id=metric_id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def clear_metric_refs(self, session, metric_ids: Iterable[UUID]) -> int:
        metric_ids = list(metric_ids)
        if not metric_ids:
            return 0
        stmt = (
            update(Operation)
            .where(Operation.metric_id.in_(metric_ids))
            .values(metric_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount


class MetricRepository(BaseRepository):
    model = Metric

    async def list_for_user(self, session, user_id: UUID, kind: str = None) -> list:
        stmt = select(Metric).where(Metric.user_id == user_id)
        if kind:
            stmt = stmt.where(Metric.kind == kind)
        result = await session.execute(stmt.order_by(Metric.display_order))
        return list(result.scalars().all())


class GoalRepository(BaseRepository):
    model = Goal


class SubgoalRepository(BaseRepository):
    model = Subgoal

    async def list_for_goal(self, session, goal_id: UUID) -> list:
        stmt = (
            select(Subgoal)
            .where(Subgoal.goal_id == goal_id)
            .order_by(Subgoal.display_order)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def delete_for_goals(self, session, goal_ids: Iterable[UUID]) -> int:
        goal_ids = list(goal_ids)
        if not goal_ids:
            return 0
        stmt = (
            delete(Subgoal)
            .where(Subgoal.goal_id.in_(goal_ids))
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount


class OperationHabitRepository(BaseRepository):
    model = OperationHabit

    async def list_for_operations(self, session, operation_ids: Iterable[UUID]) -> list:
        stmt = select(OperationHabit).where(
            OperationHabit.operation_id.in_(list(operation_ids))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def delete_for(
        self,
        session,
        operation_ids: Iterable[UUID] = (),
        habit_ids: Iterable[UUID] = ()
    ) -> int:
        operation_ids, habit_ids = list(operation_ids), list(habit_ids)
        if not operation_ids and not habit_ids:
            return 0
        stmt = (
            delete(OperationHabit)
            .where(or_(
                OperationHabit.operation_id.in_(operation_ids),
                OperationHabit.habit_id.in_(habit_ids),
            ))
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount


class UserRepository(BaseRepository):
    model = User

    async def update_schedule(self, session, user_id: UUID, wake_hour: int, sleep_hour: int) -> int:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(wake_hour=wake_hour, sleep_hour=sleep_hour)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount


class OnboardingStateRepository(BaseRepository):
    model = OnboardingState

    async def get(self, session, user_id: UUID) -> Optional[OnboardingState]:
        stmt = select(OnboardingState).where(OnboardingState.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_phase(self, session, user_id: UUID, phase: str) -> None:
        """INSERT ... ON CONFLICT (user_id) DO UPDATE"""
        if session.bind.dialect.name == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            from sqlalchemy.dialects.postgresql import insert

        now = datetime.now(timezone.utc)
        stmt = insert(OnboardingState).values(
            user_id=user_id,
            current_phase=phase,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[OnboardingState.user_id],
            set_={"current_phase": phase, "updated_at": now},
        )
        await session.execute(stmt)


class FunnelEventRepository(BaseRepository):
    model = FunnelEvent

    async def list_for_draft(self, session, draft_id: str, event_type: str = None) -> list:
        stmt = select(FunnelEvent).where(FunnelEvent.draft_id == draft_id)
        if event_type:
            stmt = stmt.where(FunnelEvent.event_type == event_type)
        result = await session.execute(stmt.order_by(FunnelEvent.created_at))
        return list(result.scalars().all())


class DraftClaimRepository(BaseRepository):
    model = DraftClaim

    async def get_by_draft(self, session, draft_id: str) -> Optional[DraftClaim]:
        stmt = select(DraftClaim).where(DraftClaim.draft_id == draft_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def acquire(self, session, draft_id: str, user_id: UUID) -> DraftClaim:
        """Plain INSERT; raises IntegrityError when the draft is already claimed"""
        return await self.insert(
            session,
            draft_id=draft_id,
            user_id=user_id,
            status=ClaimStatus.PENDING.value,
            claimed_at=datetime.now(timezone.utc),
        )

    async def reacquire(self, session, draft_id: str, user_id: UUID, stale_before: datetime) -> int:
        """
        Conditional UPDATE taking over a failed or abandoned claim.

        Returns the number of rows taken over (0 or 1); the WHERE clause makes
        it safe against a concurrent taker.
        """
        stmt = (
            update(DraftClaim)
            .where(DraftClaim.draft_id == draft_id)
            .where(or_(
                DraftClaim.status == ClaimStatus.FAILED.value,
                and_(
                    DraftClaim.status == ClaimStatus.PENDING.value,
                    DraftClaim.claimed_at < stale_before,
                ),
            ))
            .values(
                user_id=user_id,
                status=ClaimStatus.PENDING.value,
                error=None,
                claimed_at=datetime.now(timezone.utc),
                completed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount

    async def mark(self, session, draft_id: str, status: str, error: str = None) -> int:
        stmt = (
            update(DraftClaim)
            .where(DraftClaim.draft_id == draft_id)
            .values(
                status=status,
                error=error,
                completed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount


def create_uow_provider(session_factory=None) -> "UoWProvider":
    """
    Factory for a UnitOfWork provider.

    Usage:
        from infrastructure.uow import create_uow_provider

        uow_provider = create_uow_provider()

        async with uow_provider() as uow:
            await uow.goals.get(uow.session, goal_id)
    """
    if session_factory is None:
        from database import AsyncSessionLocal
        session_factory = AsyncSessionLocal

    class UoWProvider:
        def __init__(self, factory):
            self._factory = factory

        def __call__(self) -> UnitOfWork:
            return UnitOfWork(self._factory)

    return UoWProvider(session_factory)
