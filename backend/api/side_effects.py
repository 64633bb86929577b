"""
Side effect log endpoints.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from database.database import get_db
from database.tables import User
from models.care_models import (
    SideEffectCreate,
    SideEffectData,
    SideEffectListResponse,
    SideEffectResponse,
)
from services import care_service
from services.auth_service import get_current_user

router = APIRouter(prefix="/api/v1/side-effects", tags=["Side Effects"])


@router.get("", response_model=SideEffectListResponse)
def list_side_effects(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SideEffectListResponse:
    """Most recent side effect entries, newest first."""
    logs = care_service.list_side_effects(db, user.id)
    return SideEffectListResponse(logs=[SideEffectData.model_validate(entry) for entry in logs])


@router.post("", response_model=SideEffectResponse, status_code=status.HTTP_201_CREATED)
def log_side_effect(
    payload: SideEffectCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SideEffectResponse:
    entry = care_service.log_side_effect(db, user.id, payload)
    return SideEffectResponse(log=SideEffectData.model_validate(entry))


@router.delete("/{log_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_side_effect(
    log_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    care_service.delete_side_effect(db, user.id, log_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
