"""
Finalize API Controller

Thin wrapper over FinalizationEngine for already authenticated users.
"""
import uuid

from fastapi import APIRouter, Depends

from api.auth import get_current_user_id
from api.dependencies import get_engine
from finalization.engine import FinalizationEngine
from schemas import FinalizeRequest, SuccessResponse

router = APIRouter()


@router.post(
    "/finalize",
    response_model=SuccessResponse,
    status_code=200,
    responses={
        400: {"model": dict, "description": "Malformed draft"},
        401: {"model": dict, "description": "Unauthorized"},
        500: {"model": dict, "description": "A load-bearing write failed"},
    },
    tags=["Onboarding"],
    summary="Materialize a draft system for the caller",
)
async def finalize(
    payload: FinalizeRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: FinalizationEngine = Depends(get_engine)
) -> SuccessResponse:
    """
    ## Effects
    - Creates operations, metrics, habits, goals and subgoals
    - Links metrics and habits to operations
    - Stores the schedule and marks onboarding complete

    A run where only best-effort writes failed still returns 200.
    """
    await engine.run(payload, user_id=user_id)
    return SuccessResponse(success=True)
