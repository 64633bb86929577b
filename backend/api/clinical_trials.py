"""
Clinical trial search endpoint.
"""

from fastapi import APIRouter, Depends, Query, Request

from database.tables import User
from models.care_models import ClinicalTrialsResponse, TrialStatus
from services.auth_service import get_current_user
from services.cache_service import CacheClient, get_cache
from services.clinical_trials_service import ClinicalTrialsService

router = APIRouter(prefix="/api/v1/clinical-trials", tags=["Clinical Trials"])


def get_trials_service(request: Request) -> ClinicalTrialsService:
    return request.app.state.trials_service


@router.get("", response_model=ClinicalTrialsResponse)
async def search_trials(
    query: str = Query(..., min_length=1, max_length=200, description="Condition or keyword"),
    status: TrialStatus = Query(default=TrialStatus.RECRUITING, description="Trial status"),
    _user: User = Depends(get_current_user),
    cache: CacheClient = Depends(get_cache),
    service: ClinicalTrialsService = Depends(get_trials_service),
) -> ClinicalTrialsResponse:
    """Search ClinicalTrials.gov by condition or keyword."""
    trials = await service.search_cached(cache, query.strip(), status)
    return ClinicalTrialsResponse(trials=trials)
