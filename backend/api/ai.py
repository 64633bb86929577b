"""
Oncology AI endpoints: chat, treatment overview, diet, second opinion.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from config.config import Settings
from config.logging_config import get_logger
from database.database import get_db, transaction
from database.tables import MedicalProfile, User
from models.care_models import (
    AIChatRequest,
    AIChatResponse,
    DietRequest,
    DietResponse,
    PatientContext,
    SecondOpinionRequest,
    SecondOpinionResponse,
    TreatmentInfoResponse,
)
from services import care_service
from services.ai_service import OncologyAIService, get_ai_service, is_service_notice
from services.auth_service import get_app_settings, get_current_user
from services.cache_service import CacheClient, get_cache
from services.exceptions import InvalidRequestError
from services.patient_service import get_medical_profile

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/ai", tags=["AI"])

TREATMENT_CACHE_TTL_SECONDS = 3600
DIET_CACHE_TTL_SECONDS = 1800


def _load_profile(db: Session, user_id: str) -> MedicalProfile | None:
    # Releases the connection before the provider call
    with transaction(db):
        return get_medical_profile(db, user_id)


def _require_cancer_type(db: Session, user_id: str) -> MedicalProfile:
    profile = _load_profile(db, user_id)
    if profile is None or not profile.cancer_type:
        raise InvalidRequestError("Complete your medical profile first")
    return profile


def _is_answer(text: str) -> bool:
    """Only generated answers go into the shared cache, never service notices."""
    return not is_service_notice(text)


@router.post("/chat", response_model=AIChatResponse)
async def chat(
    payload: AIChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ai_service: OncologyAIService = Depends(get_ai_service),
) -> AIChatResponse:
    """
    Send a message to the oncology assistant.

    Omit ``session_id`` to start a new conversation.
    """
    logger.info("AI chat request received", message_preview=payload.message[:100])
    return await care_service.chat(db, ai_service, user.id, payload.message, payload.session_id)


@router.get("/treatment", response_model=TreatmentInfoResponse)
async def treatment_info(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
    ai_service: OncologyAIService = Depends(get_ai_service),
) -> TreatmentInfoResponse:
    """Treatment options overview for the patient's cancer type and stage."""
    profile = await asyncio.to_thread(_require_cancer_type, db, user.id)
    stage = profile.cancer_stage or "Unknown"

    async def _fetch() -> str:
        return await ai_service.treatment_info(
            profile.cancer_type, stage, profile.current_treatment
        )

    text = await cache.get_or_set(
        f"treatment:{profile.cancer_type}:{stage}",
        _fetch,
        TREATMENT_CACHE_TTL_SECONDS,
        should_cache=_is_answer,
    )
    return TreatmentInfoResponse(treatment_info=text)


@router.post("/diet", response_model=DietResponse)
async def diet(
    payload: DietRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
    ai_service: OncologyAIService = Depends(get_ai_service),
) -> DietResponse:
    """Diet and lifestyle recommendations for the patient's situation."""
    profile = await asyncio.to_thread(_require_cancer_type, db, user.id)
    treatment = profile.current_treatment or "None"
    effects = sorted(payload.side_effects)

    async def _fetch() -> str:
        return await ai_service.diet_recommendations(profile.cancer_type, treatment, effects)

    text = await cache.get_or_set(
        f"diet:{profile.cancer_type}:{treatment}:{','.join(effects)}",
        _fetch,
        DIET_CACHE_TTL_SECONDS,
        should_cache=_is_answer,
    )
    return DietResponse(recommendations=text)


@router.post("/second-opinion", response_model=SecondOpinionResponse)
async def second_opinion(
    payload: SecondOpinionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
    ai_service: OncologyAIService = Depends(get_ai_service),
    settings: Settings = Depends(get_app_settings),
) -> SecondOpinionResponse:
    """
    AI second-opinion analysis of the patient's question.

    Limited per patient per hour; the limit is not enforced while the
    cache is unavailable.
    """
    count = await cache.increment(
        f"ratelimit:second-opinion:{user.id}", settings.second_opinion_rate_window_seconds
    )
    if count is not None and count > settings.second_opinion_rate_limit:
        logger.warning("Second opinion rate limit exceeded", user_id=user.id, count=count)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many second opinion requests. Please try again later.",
        )

    profile = await asyncio.to_thread(_load_profile, db, user.id)
    context = care_service.patient_context_from_profile(profile) or PatientContext()
    analysis = await ai_service.second_opinion(payload.query, context)
    return SecondOpinionResponse(analysis=analysis)
