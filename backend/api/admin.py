"""
Administrative endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.database import get_db
from database.tables import User
from models.models import MessageResponse, SeedResponse
from services.auth_service import get_current_user, require_admin
from services.cache_service import CacheClient, get_cache
from services.patient_service import skip_onboarding
from services.question_catalog import seed_questions

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.post("/skip-onboarding", response_model=MessageResponse)
async def skip_onboarding_endpoint(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
) -> MessageResponse:
    """Mark the caller's onboarding complete without answering the questions."""
    await skip_onboarding(db, cache, user)
    return MessageResponse(message="Onboarding skipped")


@router.post("/seed-questions", response_model=SeedResponse)
def seed_questions_endpoint(
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> SeedResponse:
    """Upsert the onboarding question catalog."""
    count = seed_questions(db)
    return SeedResponse(message="Onboarding questions seeded", count=count)
