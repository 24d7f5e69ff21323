from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Text, Float, Integer, JSON, Boolean, UniqueConstraint, Index, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum
from database import Base


# =============================================================================
# ENUMERATIONS
# =============================================================================

class MetricKind(str, enum.Enum):
    """
    Metric subtype

    numeric: value with unit / optimal / minimum / operator
    boolean: a habit, done or not done
    """
    NUMERIC = "numeric"
    BOOLEAN = "boolean"


class GoalType(str, enum.Enum):
    METRIC_BASED = "metric_based"
    SUBGOAL_BASED = "subgoal_based"


class OnboardingPhase(str, enum.Enum):
    WELCOME = "welcome"
    COMPLETE = "complete"


class ClaimStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# =============================================================================
# USER RECORD
# =============================================================================

class User(Base):
    __tablename__ = "users"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Daily schedule, hours in [0, 23]
    wake_hour = Column(Integer, nullable=True)
    sleep_hour = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


# =============================================================================
# OPERATING SYSTEM ENTITIES
# =============================================================================

class Operation(Base):
    """Top-level life area ("Health", "Work") that metrics, habits and goals attach to"""
    __tablename__ = "operations"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)

    # Zero-or-one numeric metric, set by the metric -> operation link step
    metric_id = Column(Uuid, ForeignKey("metrics.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    metric = relationship("Metric", foreign_keys=[metric_id])


class Metric(Base):
    """
    Tracked value. Habits live in the same table with kind=boolean;
    unit / optimal_value / minimum_value / operator only apply to numeric rows.
    """
    __tablename__ = "metrics"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)

    name = Column(String, nullable=False)
    kind = Column("type", String, nullable=False)  # numeric | boolean
    unit = Column(String, nullable=True)
    optimal_value = Column(Float, nullable=True)
    minimum_value = Column(Float, nullable=True)
    operator = Column(String, nullable=True)  # at_least | at_most | exactly
    display_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class OperationHabit(Base):
    """operation <-> habit association"""
    __tablename__ = "operation_habits"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    operation_id = Column(Uuid, ForeignKey("operations.id"), nullable=False)
    habit_id = Column(Uuid, ForeignKey("metrics.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("operation_id", "habit_id", name="uq_operation_habit"),
    )


class Goal(Base):
    __tablename__ = "goals"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)

    title = Column(String, nullable=False)
    goal_type = Column(String, nullable=False)  # metric_based | subgoal_based
    target_date = Column(Date, nullable=True)

    operation_id = Column(Uuid, ForeignKey("operations.id"), nullable=True)

    # metric_based only
    metric_id = Column(Uuid, ForeignKey("metrics.id"), nullable=True)
    target_value = Column(Float, nullable=True)
    initial_value = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    subgoals = relationship(
        "Subgoal",
        back_populates="goal",
        order_by="Subgoal.display_order",
    )


class Subgoal(Base):
    __tablename__ = "subgoals"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    goal_id = Column(Uuid, ForeignKey("goals.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    goal = relationship("Goal", back_populates="subgoals")


# =============================================================================
# ONBOARDING / FUNNEL
# =============================================================================

class OnboardingState(Base):
    __tablename__ = "onboarding_state"
    user_id = Column(Uuid, primary_key=True)
    current_phase = Column(String, nullable=False, default=OnboardingPhase.WELCOME.value)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class FunnelEvent(Base):
    """
    Terminal analytics event of a finalization run.

    event_data:
        {"success": true, "counts": {...}, "soft_failures": [...]}
        {"success": false, "error": "..."}
    """
    __tablename__ = "funnel_events"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=True, index=True)
    draft_id = Column(String, nullable=True)
    event_type = Column(String, nullable=False)
    event_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_funnel_events_draft_type", "draft_id", "event_type"),
    )


class DraftClaim(Base):
    """
    At-most-once gate for the claim path.

    The UNIQUE constraint on draft_id is the gate: acquiring a claim is a
    plain INSERT, a concurrent second INSERT fails with IntegrityError.
    """
    __tablename__ = "draft_claims"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    draft_id = Column(String, nullable=False)
    user_id = Column(Uuid, nullable=False)
    status = Column(String, nullable=False, default=ClaimStatus.PENDING.value)
    error = Column(Text, nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("draft_id", name="uq_draft_claims_draft_id"),
    )
