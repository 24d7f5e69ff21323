"""
Terminal funnel event of a finalization run. Never load-bearing.
"""
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from finalization.context import RunContext
from logging_config import get_logger

logger = get_logger(__name__)

FINALIZE_EVENT = "onboarding_completed"
CLAIM_EVENT = "draft_claimed"


class AnalyticsRecorder:

    def __init__(self, uow_provider):
        self._uow_provider = uow_provider

    @staticmethod
    def event_type(ctx: RunContext) -> str:
        return CLAIM_EVENT if ctx.draft_id else FINALIZE_EVENT

    async def record_success(self, ctx: RunContext, counts: dict) -> bool:
        return await self._record(ctx, {
            "success": True,
            "counts": dict(counts),
            "soft_failures": [f.to_dict() for f in ctx.soft_failures],
        })

    async def record_failure(self, ctx: RunContext, error: Optional[str]) -> bool:
        """Must never mask the error that aborted the run"""
        return await self._record(ctx, {
            "success": False,
            "error": error,
        })

    async def _record(self, ctx: RunContext, event_data: dict) -> bool:
        try:
            async with self._uow_provider() as uow:
                await uow.events.insert(
                    uow.session,
                    user_id=ctx.user_id,
                    draft_id=ctx.draft_id,
                    event_type=self.event_type(ctx),
                    event_data=event_data,
                )
        except SQLAlchemyError as e:
            logger.error(
                "analytics_record_failed",
                success=event_data["success"],
                error=str(e),
                **ctx.log_fields()
            )
            return False
        return True
