"""
Domain Exceptions for Draft Finalization

Exception hierarchy for the finalize / claim pipeline.
Everything derives from BaseFinalizationException.

Author: Finalization Core Team
Date: 2026-10-02
"""


class BaseFinalizationException(Exception):
    """Base class for all finalization domain errors"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serialize into the API error body"""
        return {"error": self.message}


# =============================================================================
# Immediate rejections (no materialization attempted)
# =============================================================================

class Unauthorized(BaseFinalizationException):
    """No caller identity"""

    def __init__(self):
        super().__init__(message="Unauthorized")


class DraftValidationError(BaseFinalizationException):
    """Missing or malformed input"""


class AlreadyClaimed(BaseFinalizationException):
    """Draft was already materialized by an earlier claim"""

    def __init__(self, draft_id: str, status: str = None):
        super().__init__(
            message="Draft has already been claimed",
            details={
                "draft_id": draft_id,
                "claim_status": status
            }
        )


# =============================================================================
# Materialization failures
# =============================================================================

class HardFailure(BaseFinalizationException):
    """A load-bearing write failed; the run is aborted"""

    def __init__(self, step: str, message: str, cause: Exception = None):
        super().__init__(
            message=message,
            details={
                "step": step,
                "cause": str(cause) if cause is not None else None
            }
        )
        self.step = step
        self.cause = cause


# =============================================================================
# HTTP Status Mapping
# =============================================================================

EXCEPTION_TO_STATUS = {
    Unauthorized: 401,
    DraftValidationError: 400,
    AlreadyClaimed: 400,
    HardFailure: 500,
}
