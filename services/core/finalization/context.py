"""
Run-scoped state of one finalization pass.
"""
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from finalization.identity_map import IdentityMapper
from logging_config import get_logger

logger = get_logger(__name__)


class RunState(str, Enum):
    """
    Start -> (Rejected | Materializing) -> (Aborted | SoftDegraded | Clean) -> Recorded
    """
    STARTED = "started"
    REJECTED = "rejected"
    MATERIALIZING = "materializing"
    ABORTED = "aborted"
    SOFT_DEGRADED = "soft_degraded"
    CLEAN = "clean"
    RECORDED = "recorded"


@dataclass
class SoftFailure:
    step: str
    error: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"step": self.step, "error": self.error, **self.details}


@dataclass
class RunContext:
    user_id: UUID
    draft_id: Optional[str] = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    identities: IdentityMapper = field(default_factory=IdentityMapper)
    state: RunState = RunState.STARTED
    soft_failures: List[SoftFailure] = field(default_factory=list)
    # Steps that completed, in order (operations, metrics, ...)
    completed_steps: List[str] = field(default_factory=list)
    outcome: Optional[RunState] = None
    # CompensationLog of the run, attached by the engine
    compensations: Any = None

    def log_fields(self) -> dict:
        return {
            "run_id": self.run_id,
            "user_id": str(self.user_id),
            "draft_id": self.draft_id,
        }

    def soft_fail(self, step: str, error: Any, **details) -> None:
        """Record a best-effort write that did not happen; the run continues"""
        details = {k: str(v) if isinstance(v, UUID) else v for k, v in details.items()}
        record = SoftFailure(step=step, error=str(error), details=details)
        self.soft_failures.append(record)
        logger.warning(
            "soft_failure",
            step=step,
            error=record.error,
            **details,
            **self.log_fields()
        )

    def transition(self, state: RunState) -> None:
        logger.debug("run_state", from_state=self.state.value, to_state=state.value, run_id=self.run_id)
        self.state = state
