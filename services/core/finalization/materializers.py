"""
MATERIALIZERS

Turn draft rows into persisted rows and feed the run's IdentityMapper.

Load-bearing writes (operations, numeric metrics, habits, each goal) raise
HardFailure. The subgoal batch of a goal is best effort.

Author: Finalization Core Team
Date: 2026-10-03
"""
from typing import List, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from exceptions import HardFailure
from finalization.context import RunContext
from finalization.identity_map import IdentityKind
from logging_config import get_logger
from models import GoalType, MetricKind
from schemas import DraftGoal, DraftHabit, DraftMetric, DraftOperation

logger = get_logger(__name__)


def _check_alignment(step: str, message: str, submitted: int, returned: int) -> None:
    if submitted != returned:
        raise HardFailure(
            step,
            message,
            RuntimeError(f"store returned {returned} rows for {submitted} submitted")
        )


class OperationMaterializer:
    STEP = "operations"

    def __init__(self, uow_provider):
        self._uow_provider = uow_provider

    async def materialize(self, ctx: RunContext, operations: Sequence[DraftOperation]) -> List[UUID]:
        if not operations:
            return []

        rows = [
            {
                "user_id": ctx.user_id,
                "title": op.name,
                "description": op.description,
                "display_order": index,
            }
            for index, op in enumerate(operations)
        ]

        try:
            async with self._uow_provider() as uow:
                created = await uow.operations.bulk_insert(uow.session, rows)
                real_ids = [row.id for row in created]
        except SQLAlchemyError as e:
            raise HardFailure(self.STEP, "Failed to create operations", e) from e

        async def undo(uow):
            await uow.operation_habits.delete_for(uow.session, operation_ids=real_ids)
            await uow.operations.delete_many(uow.session, real_ids)

        ctx.compensations.register(self.STEP, real_ids, undo)
        _check_alignment(self.STEP, "Failed to create operations", len(rows), len(real_ids))

        for op, real_id in zip(operations, real_ids):
            ctx.identities.put(IdentityKind.OPERATION, op.id, real_id)

        logger.info("operations_created", count=len(real_ids))
        return real_ids


class MetricMaterializer:
    NUMERIC_STEP = "numeric_metrics"
    HABIT_STEP = "habits"

    def __init__(self, uow_provider):
        self._uow_provider = uow_provider

    async def materialize_numeric(
        self,
        ctx: RunContext,
        metrics: Sequence[DraftMetric],
        habit_count: int
    ) -> List[Tuple[DraftMetric, UUID]]:
        """
        Numeric metrics share one ordering space with habits: habits take
        0..habit_count-1, numeric metrics continue after them.
        """
        if not metrics:
            return []

        rows = [
            {
                "user_id": ctx.user_id,
                "name": metric.name,
                "kind": MetricKind.NUMERIC.value,
                "unit": metric.unit,
                "optimal_value": metric.optimal_value,
                "minimum_value": metric.minimum_value,
                "operator": metric.operator,
                "display_order": index + habit_count,
            }
            for index, metric in enumerate(metrics)
        ]

        try:
            async with self._uow_provider() as uow:
                created = await uow.metrics.bulk_insert(uow.session, rows)
                real_ids = [row.id for row in created]
        except SQLAlchemyError as e:
            raise HardFailure(self.NUMERIC_STEP, "Failed to create metrics", e) from e

        async def undo(uow):
            await uow.operations.clear_metric_refs(uow.session, real_ids)
            await uow.metrics.delete_many(uow.session, real_ids)

        ctx.compensations.register(self.NUMERIC_STEP, real_ids, undo)
        _check_alignment(self.NUMERIC_STEP, "Failed to create metrics", len(rows), len(real_ids))

        for metric, real_id in zip(metrics, real_ids):
            ctx.identities.put(IdentityKind.METRIC, metric.name, real_id)

        logger.info("numeric_metrics_created", count=len(real_ids))
        return list(zip(metrics, real_ids))

    async def materialize_habits(
        self,
        ctx: RunContext,
        habits: Sequence[DraftHabit]
    ) -> List[Tuple[DraftHabit, UUID]]:
        if not habits:
            return []

        rows = [
            {
                "user_id": ctx.user_id,
                "name": habit.name,
                "kind": MetricKind.BOOLEAN.value,
                "display_order": index,
            }
            for index, habit in enumerate(habits)
        ]

        try:
            async with self._uow_provider() as uow:
                created = await uow.metrics.bulk_insert(uow.session, rows)
                real_ids = [row.id for row in created]
        except SQLAlchemyError as e:
            raise HardFailure(self.HABIT_STEP, "Failed to create habits", e) from e

        async def undo(uow):
            await uow.operation_habits.delete_for(uow.session, habit_ids=real_ids)
            await uow.metrics.delete_many(uow.session, real_ids)

        ctx.compensations.register(self.HABIT_STEP, real_ids, undo)
        _check_alignment(self.HABIT_STEP, "Failed to create habits", len(rows), len(real_ids))

        for habit, real_id in zip(habits, real_ids):
            ctx.identities.put(IdentityKind.HABIT, habit.id, real_id)

        logger.info("habits_created", count=len(real_ids))
        return list(zip(habits, real_ids))


class GoalMaterializer:
    STEP = "goals"
    SUBGOAL_STEP = "subgoals"
    METRIC_LINK_STEP = "goal_metric_link"

    def __init__(self, uow_provider):
        self._uow_provider = uow_provider

    async def materialize(self, ctx: RunContext, goals: Sequence[DraftGoal]) -> List[UUID]:
        """
        Goals are inserted one by one, in input order; the first failing
        insert aborts the run.
        """
        goal_ids = []
        for goal in goals:
            goal_ids.append(await self._materialize_one(ctx, goal))

        if goal_ids:
            logger.info("goals_created", count=len(goal_ids))
        return goal_ids

    async def _materialize_one(self, ctx: RunContext, goal: DraftGoal) -> UUID:
        metric_based = goal.goal_type == GoalType.METRIC_BASED.value

        metric_id = None
        if metric_based and goal.linked_metric_name:
            metric_id = ctx.identities.resolve(IdentityKind.METRIC, goal.linked_metric_name)
            if metric_id is None:
                ctx.soft_fail(
                    self.METRIC_LINK_STEP,
                    "unknown metric name",
                    goal=goal.title,
                    metric=goal.linked_metric_name
                )

        row = {
            "user_id": ctx.user_id,
            "operation_id": ctx.identities.resolve(IdentityKind.OPERATION, goal.operation_id),
            "title": goal.title,
            "goal_type": goal.goal_type,
            "target_date": goal.target_date,
            "metric_id": metric_id,
            "target_value": goal.target_value if metric_based else None,
            "initial_value": goal.initial_value if metric_based else None,
        }

        try:
            async with self._uow_provider() as uow:
                created = await uow.goals.insert(uow.session, **row)
                goal_id = created.id
        except SQLAlchemyError as e:
            logger.error("goal_insert_failed", goal=goal.title, error=str(e))
            raise HardFailure(self.STEP, "Failed to create goals", e) from e

        async def undo(uow):
            await uow.subgoals.delete_for_goals(uow.session, [goal_id])
            await uow.goals.delete_many(uow.session, [goal_id])

        ctx.compensations.register(self.STEP, [goal_id], undo)

        if not metric_based and goal.subgoals:
            await self._materialize_subgoals(ctx, goal, goal_id)

        return goal_id

    async def _materialize_subgoals(self, ctx: RunContext, goal: DraftGoal, goal_id: UUID) -> None:
        rows = [
            {
                "goal_id": goal_id,
                "title": title,
                "is_completed": False,
                "display_order": index,
            }
            for index, title in enumerate(goal.subgoals)
        ]
        try:
            async with self._uow_provider() as uow:
                await uow.subgoals.bulk_insert(uow.session, rows)
        except SQLAlchemyError as e:
            ctx.soft_fail(self.SUBGOAL_STEP, e, goal=goal.title, goal_id=goal_id)
