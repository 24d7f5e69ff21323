"""
DRAFT SCHEMA TESTS

Wire names of the generated draft and their validation.
"""
from datetime import date

import pytest
from pydantic import ValidationError

from schemas import ClaimRequest, DraftSystem, Schedule


class TestDraftParsing:

    def test_operation_accepts_title_alias(self):
        draft = DraftSystem.model_validate({"operations": [{"id": "o", "title": "Health"}]})
        assert draft.operations[0].name == "Health"

    def test_extra_fields_are_ignored(self):
        draft = DraftSystem.model_validate({
            "habits": [{"id": "h", "name": "Walk", "reasoning": "fresh air"}],
        })
        assert draft.habits[0].name == "Walk"

    def test_missing_collections_default_empty(self):
        draft = DraftSystem.model_validate({})
        assert draft.counts() == {"operations": 0, "goals": 0, "habits": 0, "metrics": 0}
        assert draft.schedule is None

    def test_invalid_operator_rejected(self):
        with pytest.raises(ValidationError):
            DraftSystem.model_validate({"metrics": [{"name": "Sleep", "operator": "more"}]})

    def test_invalid_goal_type_rejected(self):
        with pytest.raises(ValidationError):
            DraftSystem.model_validate({"goals": [{"title": "x", "goal_type": "vibes"}]})

    def test_goal_target_date_parsed(self):
        draft = DraftSystem.model_validate({"goals": [{
            "title": "x", "goal_type": "subgoal_based", "target_date": "2027-01-31",
        }]})
        assert draft.goals[0].target_date == date(2027, 1, 31)


class TestSchedule:

    @pytest.mark.parametrize("payload", [
        {"wakeHour": 6, "sleepHour": 23},
        {"wake_hour": 6, "sleep_hour": 23},
        {"wake": 6, "sleep": 23},
    ])
    def test_aliases(self, payload):
        schedule = Schedule.model_validate(payload)
        assert (schedule.wake_hour, schedule.sleep_hour) == (6, 23)

    @pytest.mark.parametrize("payload", [
        {"wakeHour": -1, "sleepHour": 23},
        {"wakeHour": 6, "sleepHour": 24},
    ])
    def test_hours_bounded(self, payload):
        with pytest.raises(ValidationError):
            Schedule.model_validate(payload)


class TestClaimRequest:

    def test_draft_id_alias(self):
        req = ClaimRequest.model_validate({"draftId": "d1"})
        assert req.draft_id == "d1"

    def test_draft_id_optional(self):
        req = ClaimRequest.model_validate({"operations": []})
        assert req.draft_id is None

    def test_to_draft_drops_draft_id(self):
        req = ClaimRequest.model_validate({
            "draftId": "d1",
            "operations": [{"id": "o", "name": "Health"}],
        })
        draft = req.to_draft()
        assert type(draft) is DraftSystem
        assert draft.operations[0].name == "Health"
