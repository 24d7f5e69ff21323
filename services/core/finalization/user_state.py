"""
Writes against the caller's own records: schedule hours and onboarding phase.
Both are best effort.
"""
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from finalization.context import RunContext
from logging_config import get_logger
from models import OnboardingPhase
from schemas import Schedule

logger = get_logger(__name__)


class ScheduleApplier:
    STEP = "schedule"

    def __init__(self, uow_provider):
        self._uow_provider = uow_provider

    async def apply(self, ctx: RunContext, schedule: Optional[Schedule]) -> bool:
        if schedule is None:
            return False

        try:
            async with self._uow_provider() as uow:
                updated = await uow.users.update_schedule(
                    uow.session,
                    ctx.user_id,
                    wake_hour=schedule.wake_hour,
                    sleep_hour=schedule.sleep_hour,
                )
        except SQLAlchemyError as e:
            ctx.soft_fail(self.STEP, e)
            return False

        if not updated:
            ctx.soft_fail(self.STEP, "user record not found")
            return False

        logger.info("schedule_applied", wake_hour=schedule.wake_hour, sleep_hour=schedule.sleep_hour)
        return True


class OnboardingStateWriter:
    """Idempotent: upsert keyed by user id"""
    STEP = "onboarding_state"

    def __init__(self, uow_provider):
        self._uow_provider = uow_provider

    async def mark_complete(self, ctx: RunContext) -> bool:
        try:
            async with self._uow_provider() as uow:
                await uow.onboarding.upsert_phase(
                    uow.session, ctx.user_id, OnboardingPhase.COMPLETE.value
                )
        except SQLAlchemyError as e:
            ctx.soft_fail(self.STEP, e)
            return False
        return True

    async def current_phase(self, user_id) -> str:
        async with self._uow_provider() as uow:
            state = await uow.onboarding.get(uow.session, user_id)
        if state is None:
            return OnboardingPhase.WELCOME.value
        return state.current_phase
