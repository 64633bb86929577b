"""
Account endpoints: registration, login and patient account management.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from config.config import Settings
from config.logging_config import get_logger
from database.database import get_db
from database.tables import User, UserRole
from models.patient_models import (
    LoginRequest,
    PatientResponse,
    PatientUpdateRequest,
    PatientUpdateResponse,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    TrackIpResponse,
    UserPublic,
)
from services import patient_service
from services.auth_service import (
    create_access_token,
    get_app_settings,
    get_client_ip,
    get_current_user,
)

logger = get_logger(__name__)

auth_router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])
patients_router = APIRouter(prefix="/api/v1/patients", tags=["Patients"])


def _register(request: Request, payload: RegisterRequest, db: Session) -> RegisterResponse:
    user = patient_service.register_patient(db, payload, get_client_ip(request))
    return RegisterResponse(
        message="Account created successfully",
        user=UserPublic.model_validate(user),
    )


@auth_router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> RegisterResponse:
    """Create a patient account with email and password."""
    return _register(request, payload, db)


@auth_router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> TokenResponse:
    """Exchange credentials for a bearer token."""
    user = patient_service.authenticate(db, payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    logger.info("Patient logged in", user_id=user.id)
    return TokenResponse(
        access_token=create_access_token(user, settings),
        user=UserPublic.model_validate(user),
    )


@auth_router.post("/track-ip", response_model=TrackIpResponse)
def track_ip(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TrackIpResponse:
    """Store the caller's current IP address on the account."""
    ip = get_client_ip(request)
    patient_service.record_ip_address(db, user, ip)
    return TrackIpResponse(ip=ip)


def _require_self(user: User, patient_id: str) -> None:
    if user.id != patient_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@patients_router.post("", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> RegisterResponse:
    """Create a patient account (alias of /auth/register)."""
    return _register(request, payload, db)


@patients_router.get("/{patient_id}", response_model=PatientResponse)
def get_patient(
    patient_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PatientResponse:
    """Get a patient with profile and onboarding answers. Self or admin only."""
    if user.id != patient_id and user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return PatientResponse(patient=patient_service.get_patient_detail(db, patient_id))


@patients_router.patch("/{patient_id}", response_model=PatientUpdateResponse)
def update_patient(
    patient_id: str,
    payload: PatientUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PatientUpdateResponse:
    """Change the account name or password."""
    _require_self(user, patient_id)
    message = patient_service.update_patient(db, user, payload)
    return PatientUpdateResponse(message=message, patient=UserPublic.model_validate(user))


@patients_router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient(
    patient_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    """Delete the account and everything it owns."""
    _require_self(user, patient_id)
    patient_service.delete_patient(db, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
