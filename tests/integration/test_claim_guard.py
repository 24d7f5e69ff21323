"""
CLAIM GUARD TESTS
=================

At-most-once materialization of a draft id on the claim path.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from exceptions import AlreadyClaimed, HardFailure
from finalization.claim_guard import ClaimGuard
from finalization.engine import FinalizationEngine
from infrastructure.uow import DraftClaimRepository, OperationRepository
from models import DraftClaim, FunnelEvent, Goal, Metric, Operation, OperationHabit, Subgoal
from schemas import DraftSystem

pytestmark = pytest.mark.asyncio(loop_scope="function")


async def materialized_rows(count_rows) -> int:
    total = 0
    for model in (Operation, Metric, Goal, Subgoal, OperationHabit):
        total += await count_rows(model)
    return total


class TestClaimGuard:

    async def test_first_acquire_inserts_pending_claim(self, uow_provider, user_id, fetch_all):
        await ClaimGuard(uow_provider).acquire("d1", user_id)
        claims = await fetch_all(DraftClaim)
        assert [(c.draft_id, c.status, c.user_id) for c in claims] == [("d1", "pending", user_id)]

    async def test_live_pending_claim_blocks(self, uow_provider, user_id):
        guard = ClaimGuard(uow_provider)
        await guard.acquire("d1", user_id)
        with pytest.raises(AlreadyClaimed) as exc_info:
            await guard.acquire("d1", uuid.uuid4())
        assert exc_info.value.details["claim_status"] == "pending"

    async def test_succeeded_claim_blocks(self, uow_provider, user_id):
        guard = ClaimGuard(uow_provider)
        await guard.acquire("d1", user_id)
        await guard.release("d1", succeeded=True)
        with pytest.raises(AlreadyClaimed, match="Draft has already been claimed"):
            await guard.acquire("d1", user_id)

    async def test_failed_claim_can_be_retried(self, uow_provider, user_id, fetch_all):
        guard = ClaimGuard(uow_provider)
        await guard.acquire("d1", user_id)
        await guard.release("d1", succeeded=False, error="Failed to create goals")

        await guard.acquire("d1", user_id)
        claim = (await fetch_all(DraftClaim))[0]
        assert claim.status == "pending"
        assert claim.error is None

    async def test_stale_pending_claim_can_be_taken_over(self, uow_provider, user_id, session_factory, fetch_all):
        guard = ClaimGuard(uow_provider, stale_after_seconds=60)
        await guard.acquire("d1", user_id)
        async with session_factory() as session:
            await session.execute(
                update(DraftClaim)
                .where(DraftClaim.draft_id == "d1")
                .values(claimed_at=datetime.now(timezone.utc) - timedelta(hours=1))
            )
            await session.commit()

        other = uuid.uuid4()
        await guard.acquire("d1", other)
        claim = (await fetch_all(DraftClaim))[0]
        assert claim.user_id == other

    async def test_successful_event_blocks_even_when_claim_looks_stale(
        self, uow_provider, user_id, session_factory
    ):
        guard = ClaimGuard(uow_provider, stale_after_seconds=0)
        await guard.acquire("d1", user_id)
        async with session_factory() as session:
            session.add(FunnelEvent(
                user_id=user_id,
                draft_id="d1",
                event_type="draft_claimed",
                event_data={"success": True},
            ))
            await session.commit()

        with pytest.raises(AlreadyClaimed):
            await guard.acquire("d1", user_id)


# =============================================================================
# SCENARIO C: claim through the engine
# =============================================================================

class TestClaimPath:

    async def test_scenario_c_second_claim_rejected_without_writes(
        self, uow_provider, user_id, scenario_payload, count_rows, fetch_all
    ):
        engine = FinalizationEngine(uow_provider)
        draft = DraftSystem.model_validate(scenario_payload)

        await engine.run(draft, user_id=user_id, require_claim_guard=True, draft_id="d1")
        rows_after_first = await materialized_rows(count_rows)
        events_after_first = await count_rows(FunnelEvent)
        assert rows_after_first > 0

        other_payload = dict(scenario_payload, operations=[{"id": "x", "name": "Other"}])
        with pytest.raises(AlreadyClaimed):
            await engine.run(
                DraftSystem.model_validate(other_payload),
                user_id=user_id,
                require_claim_guard=True,
                draft_id="d1",
            )

        assert await materialized_rows(count_rows) == rows_after_first
        assert await count_rows(FunnelEvent) == events_after_first

        claim = (await fetch_all(DraftClaim))[0]
        assert claim.status == "succeeded"

        event = (await fetch_all(FunnelEvent))[0]
        assert event.event_type == "draft_claimed"
        assert event.draft_id == "d1"
        assert event.event_data["success"] is True

    async def test_failed_claim_is_marked_and_retryable(
        self, uow_provider, user_id, scenario_payload, monkeypatch, fetch_all, count_rows
    ):
        engine = FinalizationEngine(uow_provider)
        draft = DraftSystem.model_validate(scenario_payload)

        original = OperationRepository.bulk_insert

        async def failing(self, session, rows):
            raise SQLAlchemyError("ops down")

        monkeypatch.setattr(OperationRepository, "bulk_insert", failing)
        with pytest.raises(HardFailure):
            await engine.run(draft, user_id=user_id, require_claim_guard=True, draft_id="d2")

        claim = (await fetch_all(DraftClaim))[0]
        assert claim.status == "failed"
        assert claim.error == "Failed to create operations"

        failure = (await fetch_all(FunnelEvent))[0]
        assert failure.event_data == {"success": False, "error": "Failed to create operations"}

        monkeypatch.setattr(OperationRepository, "bulk_insert", original)
        result = await engine.run(draft, user_id=user_id, require_claim_guard=True, draft_id="d2")
        assert result.counts["operations"] == 2
        assert await count_rows(Operation) == 2

    async def test_different_drafts_are_independent(self, uow_provider, user_id, count_rows):
        engine = FinalizationEngine(uow_provider)
        draft = DraftSystem.model_validate({"operations": [{"id": "o", "name": "Health"}]})
        await engine.run(draft, user_id=user_id, require_claim_guard=True, draft_id="a")
        await engine.run(draft, user_id=user_id, require_claim_guard=True, draft_id="b")
        assert await count_rows(Operation) == 2

    async def test_claim_store_failure_records_failure_event(
        self, uow_provider, user_id, scenario_payload, monkeypatch, fetch_all, count_rows
    ):
        async def failing(self, session, draft_id, user_id):
            raise SQLAlchemyError("claims table down")

        monkeypatch.setattr(DraftClaimRepository, "acquire", failing)
        engine = FinalizationEngine(uow_provider)
        with pytest.raises(HardFailure, match="Failed to claim draft"):
            await engine.run(
                DraftSystem.model_validate(scenario_payload),
                user_id=user_id,
                require_claim_guard=True,
                draft_id="d3",
            )

        events = await fetch_all(FunnelEvent)
        assert len(events) == 1
        assert events[0].event_type == "draft_claimed"
        assert events[0].draft_id == "d3"
        assert events[0].event_data == {"success": False, "error": "Failed to claim draft"}
        assert await materialized_rows(count_rows) == 0

    async def test_success_mark_is_retried(
        self, uow_provider, user_id, scenario_payload, monkeypatch, fetch_all
    ):
        original = DraftClaimRepository.mark
        calls = []

        async def flaky(self, session, draft_id, status, error=None):
            calls.append(status)
            if len(calls) == 1:
                raise SQLAlchemyError("transient")
            return await original(self, session, draft_id, status, error=error)

        monkeypatch.setattr(DraftClaimRepository, "mark", flaky)
        engine = FinalizationEngine(uow_provider)
        await engine.run(
            DraftSystem.model_validate(scenario_payload),
            user_id=user_id,
            require_claim_guard=True,
            draft_id="d4",
        )

        assert calls == ["succeeded", "succeeded"]
        claim = (await fetch_all(DraftClaim))[0]
        assert claim.status == "succeeded"


class TestClaimRelease:

    async def test_release_gives_up_after_attempts(self, uow_provider, user_id, monkeypatch, fetch_all):
        guard = ClaimGuard(uow_provider, release_attempts=2)
        await guard.acquire("d1", user_id)

        calls = []

        async def failing(self, session, draft_id, status, error=None):
            calls.append(status)
            raise SQLAlchemyError("down")

        monkeypatch.setattr(DraftClaimRepository, "mark", failing)
        assert await guard.release("d1", succeeded=True) is False
        assert len(calls) == 2

        claim = (await fetch_all(DraftClaim))[0]
        assert claim.status == "pending"
