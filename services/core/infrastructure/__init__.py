# Infrastructure Layer
from .uow import (
    UnitOfWork,
    OperationRepository,
    MetricRepository,
    GoalRepository,
    SubgoalRepository,
    OperationHabitRepository,
    UserRepository,
    OnboardingStateRepository,
    FunnelEventRepository,
    DraftClaimRepository,
    create_uow_provider
)
