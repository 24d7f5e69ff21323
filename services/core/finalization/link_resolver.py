"""
Cross-entity links that can only be written once both ends exist.

Both directions are best effort: the metric and habit rows are valid
standalone records without the link.
"""
from typing import List, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from finalization.context import RunContext
from finalization.identity_map import IdentityKind
from logging_config import get_logger
from schemas import DraftHabit, DraftMetric

logger = get_logger(__name__)


class LinkResolver:
    METRIC_STEP = "metric_links"
    HABIT_STEP = "habit_links"

    def __init__(self, uow_provider):
        self._uow_provider = uow_provider

    async def link_metrics(self, ctx: RunContext, created: Sequence[Tuple[DraftMetric, UUID]]) -> int:
        """Set operations.metric_id, one UPDATE per linked metric"""
        linked = 0
        for metric, metric_id in created:
            if not metric.linked_operation:
                continue

            operation_id = ctx.identities.resolve(IdentityKind.OPERATION, metric.linked_operation)
            if operation_id is None:
                ctx.soft_fail(
                    self.METRIC_STEP,
                    "unresolved operation reference",
                    metric=metric.name,
                    operation=metric.linked_operation
                )
                continue

            try:
                async with self._uow_provider() as uow:
                    updated = await uow.operations.set_metric(uow.session, operation_id, metric_id)
            except SQLAlchemyError as e:
                ctx.soft_fail(self.METRIC_STEP, e, metric=metric.name, operation_id=operation_id)
                continue

            if not updated:
                ctx.soft_fail(
                    self.METRIC_STEP,
                    "operation row not found",
                    metric=metric.name,
                    operation_id=operation_id
                )
                continue
            linked += 1

        if linked:
            logger.info("metric_links_applied", count=linked)
        return linked

    async def link_habits(self, ctx: RunContext, created: Sequence[Tuple[DraftHabit, UUID]]) -> int:
        """Bulk insert operation_habits rows"""
        rows: List[dict] = []
        seen = set()
        for habit, habit_id in created:
            if not habit.linked_operation:
                continue

            operation_id = ctx.identities.resolve(IdentityKind.OPERATION, habit.linked_operation)
            if operation_id is None:
                ctx.soft_fail(
                    self.HABIT_STEP,
                    "unresolved operation reference",
                    habit=habit.name,
                    operation=habit.linked_operation
                )
                continue

            if (operation_id, habit_id) in seen:
                continue
            seen.add((operation_id, habit_id))
            rows.append({"operation_id": operation_id, "habit_id": habit_id})

        if not rows:
            return 0

        try:
            async with self._uow_provider() as uow:
                await uow.operation_habits.bulk_insert(uow.session, rows)
        except SQLAlchemyError as e:
            ctx.soft_fail(self.HABIT_STEP, e, links=len(rows))
            return 0

        logger.info("habit_links_applied", count=len(rows))
        return len(rows)
