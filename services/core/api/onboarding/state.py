"""
Onboarding State API Controller
"""
import uuid

from fastapi import APIRouter, Depends

from api.auth import get_current_user_id
from api.dependencies import get_engine
from finalization.engine import FinalizationEngine
from schemas import OnboardingStateResponse

router = APIRouter()


@router.get(
    "/onboarding/state",
    response_model=OnboardingStateResponse,
    tags=["Onboarding"],
    summary="Current onboarding phase of the caller",
)
async def get_onboarding_state(
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: FinalizationEngine = Depends(get_engine)
) -> OnboardingStateResponse:
    """Returns "welcome" until a finalization has completed"""
    phase = await engine.onboarding.current_phase(user_id)
    return OnboardingStateResponse(currentPhase=phase)
