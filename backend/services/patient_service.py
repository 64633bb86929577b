"""
Patient account and medical profile service.

Covers registration, credential checks, account settings and the
profile edits available after onboarding.
"""

import asyncio
import secrets
import string

from sqlalchemy import select
from sqlalchemy.orm import Session

from config.logging_config import get_logger
from database.database import transaction
from database.tables import MedicalProfile, User
from models.onboarding_models import OnboardingResponseData
from models.patient_models import (
    MedicalProfileData,
    MedicalProfileUpdate,
    PatientDetail,
    PatientUpdateRequest,
    RegisterRequest,
    check_password_policy,
)
from services.auth_service import hash_password, verify_password
from services.cache_service import CacheClient, cached_json, patient_cache_pattern
from services.exceptions import ConflictError, InvalidRequestError, NotFoundError

logger = get_logger(__name__)

PATIENT_ID_PREFIX = "ZNR"
_PATIENT_ID_ALPHABET = string.ascii_uppercase + string.digits
NOT_SPECIFIED = "Not specified"


def generate_patient_id() -> str:
    """Human-friendly patient identifier, e.g. ``ZNR-4K9Q2M7XA``."""
    suffix = "".join(secrets.choice(_PATIENT_ID_ALPHABET) for _ in range(9))
    return f"{PATIENT_ID_PREFIX}-{suffix}"


def get_user_by_email(session: Session, email: str) -> User | None:
    return session.scalar(select(User).where(User.email == email.lower()))


def register_patient(session: Session, request: RegisterRequest, ip_address: str | None) -> User:
    """
    Create a patient account.

    Raises:
        ConflictError: If the email is already registered.
    """
    email = request.email.lower()
    if get_user_by_email(session, email) is not None:
        raise ConflictError("An account with this email already exists")

    user = User(
        name=request.name,
        email=email,
        hashed_password=hash_password(request.password),
        ip_address=ip_address,
        patient_id=generate_patient_id(),
    )
    with transaction(session):
        session.add(user)

    logger.info("Patient registered", user_id=user.id, patient_id=user.patient_id)
    return user


def authenticate(session: Session, email: str, password: str) -> User | None:
    """Return the user when the credentials match, else None."""
    user = get_user_by_email(session, email)
    if user is None or not verify_password(password, user.hashed_password):
        logger.info("Failed login attempt")
        return None
    return user


def record_ip_address(session: Session, user: User, ip_address: str) -> None:
    with transaction(session):
        user.ip_address = ip_address


def get_patient_detail(session: Session, user_id: str) -> PatientDetail:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("Patient not found")

    return PatientDetail(
        id=user.id,
        patient_id=user.patient_id,
        name=user.name,
        email=user.email,
        role=user.role,
        onboarding_done=user.onboarding_done,
        created_at=user.created_at,
        updated_at=user.updated_at,
        ip_address=user.ip_address,
        medical_profile=(
            MedicalProfileData.model_validate(user.medical_profile)
            if user.medical_profile
            else None
        ),
        onboarding_responses=[
            OnboardingResponseData.from_row(r) for r in user.onboarding_responses
        ],
    )


def update_patient(session: Session, user: User, request: PatientUpdateRequest) -> str:
    """
    Apply an account settings change.

    Returns:
        A confirmation message.

    Raises:
        InvalidRequestError: Wrong current password, no password set, or
            the new password breaks the policy.
    """
    if request.is_password_change:
        if not user.hashed_password:
            raise InvalidRequestError("Password change not available for this account")
        if not verify_password(request.current_password, user.hashed_password):
            raise InvalidRequestError("Current password is incorrect")
        try:
            check_password_policy(request.new_password)
        except ValueError:
            raise InvalidRequestError(
                "Password must be 8+ chars with uppercase, lowercase, and a number"
            )

        with transaction(session):
            user.hashed_password = hash_password(request.new_password)
        logger.info("Password updated", user_id=user.id)
        return "Password updated"

    with transaction(session):
        if request.name:
            user.name = request.name
    return "Profile updated"


def delete_patient(session: Session, user: User) -> None:
    """Delete the account and, by cascade, every record it owns."""
    user_id = user.id
    with transaction(session):
        session.delete(user)
    logger.info("Patient account deleted", user_id=user_id)


def get_medical_profile(session: Session, user_id: str) -> MedicalProfile | None:
    return session.scalar(select(MedicalProfile).where(MedicalProfile.user_id == user_id))


def profile_cache_key(user_id: str) -> str:
    return f"patient:{user_id}:profile"


async def read_medical_profile(
    session: Session, cache: CacheClient, user_id: str
) -> MedicalProfileData | None:
    """Profile read through the cache."""

    def _load() -> dict | None:
        profile = get_medical_profile(session, user_id)
        if profile is None:
            return None
        return MedicalProfileData.model_validate(profile).model_dump(mode="json")

    data = await cached_json(cache, profile_cache_key(user_id), _load)
    return MedicalProfileData.model_validate(data) if data else None


def _overwrite_profile(session: Session, user_id: str, update: MedicalProfileUpdate) -> MedicalProfile:
    with transaction(session):
        profile = get_medical_profile(session, user_id)
        if profile is None:
            profile = MedicalProfile(user_id=user_id)
            session.add(profile)
        profile.cancer_type = update.cancer_type
        profile.cancer_stage = update.cancer_stage
        profile.current_treatment = update.current_treatment
    return profile


async def write_medical_profile(
    session: Session, cache: CacheClient, user_id: str, update: MedicalProfileUpdate
) -> MedicalProfileData:
    """Overwrite the editable profile fields and drop cached patient data."""
    profile = await asyncio.to_thread(_overwrite_profile, session, user_id, update)
    await cache.invalidate(patient_cache_pattern(user_id))
    logger.info("Medical profile updated", user_id=user_id)
    return MedicalProfileData.model_validate(profile)


def _mark_onboarding_skipped(session: Session, user: User) -> None:
    with transaction(session):
        user.onboarding_done = True
        if get_medical_profile(session, user.id) is None:
            session.add(
                MedicalProfile(
                    user_id=user.id,
                    cancer_type=NOT_SPECIFIED,
                    cancer_stage=NOT_SPECIFIED,
                    current_treatment="Not started",
                )
            )


async def skip_onboarding(session: Session, cache: CacheClient, user: User) -> None:
    """Mark onboarding complete, creating a placeholder profile if none exists."""
    await asyncio.to_thread(_mark_onboarding_skipped, session, user)
    await cache.invalidate(patient_cache_pattern(user.id))
    logger.info("Onboarding skipped", user_id=user.id)
