"""
Draft Claim API Controller

Thin wrapper over FinalizationEngine for users who drafted before
authenticating. A draft id can be materialized at most once.
"""
import uuid

from fastapi import APIRouter, Depends

from api.auth import get_current_user_id
from api.dependencies import get_engine
from finalization.engine import FinalizationEngine
from schemas import ClaimRequest, SuccessResponse

router = APIRouter()


@router.post(
    "/claim",
    response_model=SuccessResponse,
    status_code=200,
    responses={
        400: {"model": dict, "description": "draftId missing or draft already claimed"},
        401: {"model": dict, "description": "Unauthorized"},
        500: {"model": dict, "description": "A load-bearing write failed"},
    },
    tags=["Draft"],
    summary="Claim an anonymous draft for the caller",
)
async def claim_draft(
    payload: ClaimRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: FinalizationEngine = Depends(get_engine)
) -> SuccessResponse:
    """
    ## Error Codes
    - 400: draftId is required
    - 400: Draft has already been claimed
    - 401: Unauthorized
    - 500: load-bearing write failed (message of the failing step)

    ## Idempotency
    A second claim of a successfully claimed draft id is rejected before
    any write; a failed claim may be retried.
    """
    await engine.run(
        payload.to_draft(),
        user_id=user_id,
        require_claim_guard=True,
        draft_id=payload.draft_id
    )
    return SuccessResponse(success=True)
