"""
Onboarding endpoints: personalized questions and answer recording.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from config.logging_config import get_logger
from database.database import get_db
from database.tables import User
from models.onboarding_models import (
    OnboardingResponseData,
    OnboardingResponseSubmit,
    QuestionResponse,
    ResponsesListResponse,
    SubmitResponseResult,
)
from services import onboarding_service
from services.auth_service import get_client_ip, get_current_user
from services.cache_service import CacheClient, get_cache

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/onboarding", tags=["Onboarding"])


@router.get("/questions", response_model=QuestionResponse)
def get_question(
    step: int = Query(..., description="Onboarding step number"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> QuestionResponse:
    """
    Get the question for a step, phrased for the current patient.

    The question text refers to the patient ("I", "my") or to a loved one
    ("My loved one", "their") depending on the step-1 answer.
    """
    return onboarding_service.get_question_for_user(db, user.id, step)


@router.get("/responses", response_model=ResponsesListResponse)
def list_responses(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ResponsesListResponse:
    """Get the patient's recorded answers, ordered by step."""
    rows = onboarding_service.list_responses(db, user.id)
    return ResponsesListResponse(responses=[OnboardingResponseData.from_row(r) for r in rows])


@router.post("/responses", response_model=SubmitResponseResult)
async def submit_response(
    submission: OnboardingResponseSubmit,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
) -> SubmitResponseResult:
    """
    Record an answer.

    Answering the final step derives the medical profile and completes
    onboarding in the same transaction.
    """
    logger.info("Onboarding response received", step=submission.step_number)
    return await onboarding_service.submit_response(
        db, cache, user.id, submission, ip_address=get_client_ip(request)
    )
