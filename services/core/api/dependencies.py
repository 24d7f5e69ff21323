"""
Shared FastAPI dependencies
"""
from finalization.engine import FinalizationEngine

_engine: FinalizationEngine | None = None


def get_engine() -> FinalizationEngine:
    """
    FastAPI Depends for the finalization engine (one per process).

    Tests replace it through app.dependency_overrides[get_engine].
    """
    global _engine
    if _engine is None:
        _engine = FinalizationEngine()
    return _engine
