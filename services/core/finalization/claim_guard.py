"""
CLAIM GUARD

At-most-once materialization of a draft on the claim path.

Algorithm:
1. INSERT INTO draft_claims (draft_id UNIQUE) -> claim acquired
2. on IntegrityError: a successful draft_claimed event for the draft id
   means the draft is done -> AlreadyClaimed
3. conditional UPDATE taking over a failed claim or a pending claim older
   than CLAIM_STALE_AFTER_SECONDS -> claim acquired
4. otherwise -> AlreadyClaimed

The UNIQUE constraint makes step 1 the atomic gate: of two concurrent
claims for one draft exactly one INSERT succeeds.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from exceptions import AlreadyClaimed, HardFailure
from finalization.analytics import CLAIM_EVENT
from logging_config import get_logger
from models import ClaimStatus

logger = get_logger(__name__)

CLAIM_STALE_AFTER_SECONDS = int(os.getenv("CLAIM_STALE_AFTER_SECONDS", "600"))
CLAIM_RELEASE_ATTEMPTS = int(os.getenv("CLAIM_RELEASE_ATTEMPTS", "3"))


class ClaimGuard:
    STEP = "claim_guard"

    def __init__(self, uow_provider, stale_after_seconds: int = None, release_attempts: int = None):
        self._uow_provider = uow_provider
        self._release_attempts = max(1, release_attempts or CLAIM_RELEASE_ATTEMPTS)
        self._stale_after = timedelta(
            seconds=stale_after_seconds if stale_after_seconds is not None else CLAIM_STALE_AFTER_SECONDS
        )

    async def acquire(self, draft_id: str, user_id: UUID) -> None:
        """
        Raises:
            AlreadyClaimed: the draft was (or is being) materialized
            HardFailure: the store could not be asked
        """
        try:
            try:
                async with self._uow_provider() as uow:
                    await uow.claims.acquire(uow.session, draft_id, user_id)
                logger.info("claim_acquired", draft_id=draft_id)
                return
            except IntegrityError:
                pass

            if await self._has_successful_event(draft_id):
                raise AlreadyClaimed(draft_id, ClaimStatus.SUCCEEDED.value)

            stale_before = datetime.now(timezone.utc) - self._stale_after
            async with self._uow_provider() as uow:
                taken = await uow.claims.reacquire(uow.session, draft_id, user_id, stale_before)
            if taken:
                logger.info("claim_reacquired", draft_id=draft_id)
                return

            async with self._uow_provider() as uow:
                existing = await uow.claims.get_by_draft(uow.session, draft_id)
        except SQLAlchemyError as e:
            raise HardFailure(self.STEP, "Failed to claim draft", e) from e

        status = existing.status if existing is not None else None
        logger.info("claim_rejected", draft_id=draft_id, claim_status=status)
        raise AlreadyClaimed(draft_id, status)

    async def release(self, draft_id: str, succeeded: bool, error: Optional[str] = None) -> bool:
        """
        Mark the claim finished, retrying store errors. A claim left
        pending is takeable once stale.
        """
        status = ClaimStatus.SUCCEEDED if succeeded else ClaimStatus.FAILED
        for attempt in range(1, self._release_attempts + 1):
            try:
                async with self._uow_provider() as uow:
                    await uow.claims.mark(uow.session, draft_id, status.value, error=error)
                return True
            except SQLAlchemyError as e:
                logger.warning(
                    "claim_release_failed",
                    draft_id=draft_id,
                    status=status.value,
                    attempt=attempt,
                    error=str(e)
                )
        return False

    async def _has_successful_event(self, draft_id: str) -> bool:
        async with self._uow_provider() as uow:
            events = await uow.events.list_for_draft(uow.session, draft_id, CLAIM_EVENT)
        return any((event.event_data or {}).get("success") is True for event in events)
