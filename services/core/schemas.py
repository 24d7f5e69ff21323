from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from typing import Literal, Optional, List
from datetime import date


# =============================================================================
# Draft System (generated before finalization, ids are client-assigned)
# =============================================================================

class DraftEntity(BaseModel):
    """Draft rows are immutable once handed to the engine"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class DraftOperation(DraftEntity):
    id: str
    name: str = Field(validation_alias=AliasChoices("name", "title"))
    description: Optional[str] = None


class DraftMetric(DraftEntity):
    id: Optional[str] = None
    name: str
    unit: Optional[str] = None
    optimal_value: Optional[float] = None
    minimum_value: Optional[float] = None
    operator: Optional[Literal["at_least", "at_most", "exactly"]] = None
    # Ephemeral operation id (or operation name before normalization)
    linked_operation: Optional[str] = None


class DraftHabit(DraftEntity):
    id: Optional[str] = None
    name: str
    linked_operation: Optional[str] = None


class DraftGoal(DraftEntity):
    id: Optional[str] = None
    title: str
    goal_type: Literal["metric_based", "subgoal_based"]
    operation_id: Optional[str] = None
    operation_name: Optional[str] = None
    target_date: Optional[date] = None

    # metric_based
    linked_metric_name: Optional[str] = None
    target_value: Optional[float] = None
    initial_value: Optional[float] = None

    # subgoal_based
    subgoals: List[str] = Field(default_factory=list)


class Schedule(DraftEntity):
    wake_hour: int = Field(
        ge=0, le=23,
        validation_alias=AliasChoices("wakeHour", "wake_hour", "wake"),
    )
    sleep_hour: int = Field(
        ge=0, le=23,
        validation_alias=AliasChoices("sleepHour", "sleep_hour", "sleep"),
    )


class DraftSystem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    operations: List[DraftOperation] = Field(default_factory=list)
    goals: List[DraftGoal] = Field(default_factory=list)
    habits: List[DraftHabit] = Field(default_factory=list)
    metrics: List[DraftMetric] = Field(default_factory=list)
    schedule: Optional[Schedule] = None

    def counts(self) -> dict:
        return {
            "operations": len(self.operations),
            "goals": len(self.goals),
            "habits": len(self.habits),
            "metrics": len(self.metrics),
        }


# =============================================================================
# Request / Response bodies
# =============================================================================

class FinalizeRequest(DraftSystem):
    pass


class ClaimRequest(DraftSystem):
    # Optional on purpose: a missing id is reported as 400 "draftId is required"
    draft_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("draftId", "draft_id"),
    )

    def to_draft(self) -> DraftSystem:
        return DraftSystem(
            operations=self.operations,
            goals=self.goals,
            habits=self.habits,
            metrics=self.metrics,
            schedule=self.schedule,
        )


class SuccessResponse(BaseModel):
    success: bool = True


class OnboardingStateResponse(BaseModel):
    currentPhase: str
