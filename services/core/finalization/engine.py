"""
FINALIZATION ENGINE

Materializes a DraftSystem into linked rows. Both HTTP entry points
(finalize, claim) are thin adapters over FinalizationEngine.run().

Pipeline (strict order, each step awaited before the next):

    ClaimGuard (claim path only)
    -> operations                    load-bearing
    -> numeric metrics               load-bearing
    -> metric -> operation links     best effort
    -> goals (+ subgoals)            goal load-bearing, subgoals best effort
    -> habits                        load-bearing
    -> habit -> operation links      best effort
    -> schedule                      best effort
    -> onboarding state              best effort
    -> analytics event               never load-bearing, always last

Failure policy: the first load-bearing failure aborts the run, the
compensation log removes the rows already created, a failure event is
recorded (best effort) and HardFailure propagates. Best-effort failures are
logged, collected on the run context and reported in the success event.

Author: Finalization Core Team
Date: 2026-10-03
"""
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

import structlog

from exceptions import AlreadyClaimed, DraftValidationError, HardFailure, Unauthorized
from finalization.analytics import AnalyticsRecorder
from finalization.claim_guard import ClaimGuard
from finalization.context import RunContext, RunState, SoftFailure
from finalization.link_resolver import LinkResolver
from finalization.materializers import GoalMaterializer, MetricMaterializer, OperationMaterializer
from finalization.normalizer import draft_normalizer
from finalization.saga import CompensationLog
from finalization.user_state import OnboardingStateWriter, ScheduleApplier
from infrastructure.uow import create_uow_provider
from logging_config import get_logger
from schemas import DraftSystem

logger = get_logger(__name__)


@dataclass
class FinalizationResult:
    run_id: str
    outcome: RunState
    counts: dict
    operation_ids: List[UUID] = field(default_factory=list)
    goal_ids: List[UUID] = field(default_factory=list)
    soft_failures: List[SoftFailure] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.outcome == RunState.SOFT_DEGRADED


class FinalizationEngine:

    def __init__(self, uow_provider=None, claim_stale_after_seconds: int = None):
        self._uow_provider = uow_provider or create_uow_provider()
        self._normalizer = draft_normalizer
        self._operations = OperationMaterializer(self._uow_provider)
        self._metrics = MetricMaterializer(self._uow_provider)
        self._goals = GoalMaterializer(self._uow_provider)
        self._links = LinkResolver(self._uow_provider)
        self._schedule = ScheduleApplier(self._uow_provider)
        self._onboarding = OnboardingStateWriter(self._uow_provider)
        self._claims = ClaimGuard(self._uow_provider, claim_stale_after_seconds)
        self._analytics = AnalyticsRecorder(self._uow_provider)

    @property
    def onboarding(self) -> OnboardingStateWriter:
        return self._onboarding

    async def run(
        self,
        draft: DraftSystem,
        user_id: Optional[UUID],
        require_claim_guard: bool = False,
        draft_id: Optional[str] = None
    ) -> FinalizationResult:
        """
        Raises:
            Unauthorized: no caller identity
            DraftValidationError: claim path without draft id, malformed draft
            AlreadyClaimed: the draft id was already materialized
            HardFailure: a load-bearing write failed
        """
        if user_id is None:
            raise Unauthorized()
        if require_claim_guard and not draft_id:
            raise DraftValidationError("draftId is required")

        ctx = RunContext(user_id=user_id, draft_id=draft_id if require_claim_guard else None)
        with structlog.contextvars.bound_contextvars(**ctx.log_fields()):
            normalized, issues = self._normalizer.normalize(draft)

            if require_claim_guard:
                try:
                    await self._claims.acquire(draft_id, user_id)
                except AlreadyClaimed:
                    ctx.transition(RunState.REJECTED)
                    raise
                except HardFailure as e:
                    # Nothing written and no claim held: only the event is owed
                    ctx.transition(RunState.ABORTED)
                    ctx.outcome = RunState.ABORTED
                    logger.error("claim_guard_failed", error=e.message, cause=e.details.get("cause"))
                    await self._analytics.record_failure(ctx, e.message)
                    ctx.transition(RunState.RECORDED)
                    raise

            logger.info("finalization_started", **normalized.counts())
            ctx.transition(RunState.MATERIALIZING)
            ctx.compensations = CompensationLog(self._uow_provider, ctx.run_id)
            for issue in issues:
                ctx.soft_fail("normalization", issue)

            try:
                operation_ids, goal_ids = await self._materialize(ctx, normalized)
            except HardFailure as e:
                await self._abort(ctx, e)
                raise
            except Exception as e:
                failure = HardFailure("unexpected", str(e) or "Failed to finalize draft", e)
                await self._abort(ctx, failure)
                raise failure from e

            ctx.transition(RunState.SOFT_DEGRADED if ctx.soft_failures else RunState.CLEAN)
            ctx.outcome = ctx.state

            if require_claim_guard and not await self._claims.release(draft_id, succeeded=True):
                logger.error("claim_left_pending", draft_id=draft_id)
            await self._analytics.record_success(ctx, normalized.counts())
            ctx.transition(RunState.RECORDED)

            logger.info(
                "finalization_completed",
                outcome=ctx.outcome.value,
                soft_failures=len(ctx.soft_failures)
            )
            return FinalizationResult(
                run_id=ctx.run_id,
                outcome=ctx.outcome,
                counts=normalized.counts(),
                operation_ids=operation_ids,
                goal_ids=goal_ids,
                soft_failures=list(ctx.soft_failures),
            )

    async def _materialize(self, ctx: RunContext, draft: DraftSystem):
        operation_ids = await self._operations.materialize(ctx, draft.operations)
        ctx.completed_steps.append(self._operations.STEP)

        metrics = await self._metrics.materialize_numeric(ctx, draft.metrics, len(draft.habits))
        ctx.completed_steps.append(self._metrics.NUMERIC_STEP)
        await self._links.link_metrics(ctx, metrics)

        goal_ids = await self._goals.materialize(ctx, draft.goals)
        ctx.completed_steps.append(self._goals.STEP)

        habits = await self._metrics.materialize_habits(ctx, draft.habits)
        ctx.completed_steps.append(self._metrics.HABIT_STEP)
        await self._links.link_habits(ctx, habits)

        await self._schedule.apply(ctx, draft.schedule)
        await self._onboarding.mark_complete(ctx)
        return operation_ids, goal_ids

    async def _abort(self, ctx: RunContext, failure: HardFailure) -> None:
        ctx.transition(RunState.ABORTED)
        ctx.outcome = RunState.ABORTED
        logger.error(
            "finalization_aborted",
            step=failure.step,
            error=failure.message,
            cause=failure.details.get("cause"),
            completed_steps=ctx.completed_steps,
            exc_info=failure.cause or failure
        )

        report = await ctx.compensations.unwind()
        if not report.clean:
            logger.error("finalization_left_orphans", steps=report.failed)

        if ctx.draft_id:
            await self._claims.release(ctx.draft_id, succeeded=False, error=failure.message)
        await self._analytics.record_failure(ctx, failure.message)
        ctx.transition(RunState.RECORDED)
