"""
Medical profile endpoints for edits made after onboarding.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.database import get_db
from database.tables import User
from models.patient_models import MedicalProfileData, MedicalProfileUpdate
from services import patient_service
from services.auth_service import get_current_user
from services.cache_service import CacheClient, get_cache

router = APIRouter(prefix="/api/v1/medical-profile", tags=["Medical Profile"])


@router.get("", response_model=MedicalProfileData | None)
async def get_profile(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
) -> MedicalProfileData | None:
    return await patient_service.read_medical_profile(db, cache, user.id)


@router.put("", response_model=MedicalProfileData)
async def update_profile(
    payload: MedicalProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CacheClient = Depends(get_cache),
) -> MedicalProfileData:
    """Overwrite cancer type, stage and current treatment."""
    return await patient_service.write_medical_profile(db, cache, user.id, payload)
