"""
FINALIZATION MODULE

Materializes a generated draft system (operations, metrics, habits, goals,
schedule) into persisted, cross-linked rows exactly once.

Components:
- IdentityMapper: per-run ephemeral -> real id arena
- DraftNormalizer: canonical operation references
- Operation / Metric / Goal materializers: load-bearing inserts
- LinkResolver: metric -> operation, habit -> operation links
- ScheduleApplier, OnboardingStateWriter: caller record updates
- ClaimGuard: at-most-once gate for the claim path
- AnalyticsRecorder: terminal funnel event
- FinalizationEngine: the pipeline
"""
from finalization.identity_map import IdentityMapper, IdentityKind
from finalization.normalizer import DraftNormalizer, draft_normalizer
from finalization.context import RunContext, RunState, SoftFailure
from finalization.engine import FinalizationEngine, FinalizationResult

__all__ = [
    'IdentityMapper',
    'IdentityKind',
    'DraftNormalizer',
    'draft_normalizer',
    'RunContext',
    'RunState',
    'SoftFailure',
    'FinalizationEngine',
    'FinalizationResult',
]
