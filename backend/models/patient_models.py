"""
Pydantic models for accounts, authentication and the medical profile.
"""

import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models.onboarding_models import OnboardingResponseData

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
PASSWORD_POLICY_MESSAGE = "Password must contain uppercase, lowercase, and a number"


def check_password_policy(password: str) -> str:
    """Raise ValueError unless the password meets the account policy."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not PASSWORD_PATTERN.match(password):
        raise ValueError(PASSWORD_POLICY_MESSAGE)
    return password


class RegisterRequest(BaseModel):
    name: str = Field(..., max_length=255)
    email: EmailStr
    password: str = Field(..., max_length=128)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        cleaned = v.strip()
        if len(cleaned) < 2:
            raise ValueError("Name must be at least 2 characters")
        return cleaned

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_policy(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class UserPublic(BaseModel):
    """User fields safe to return to the client."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    name: str | None = None
    email: str
    role: str
    onboarding_done: bool
    created_at: datetime | None = None


class RegisterResponse(BaseModel):
    message: str
    user: UserPublic


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserPublic


class TrackIpResponse(BaseModel):
    success: bool = True
    ip: str


class MedicalProfileData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    cancer_type: str | None = None
    cancer_stage: str | None = None
    accessing_for: str
    current_treatment: str | None = None
    diagnosis_date: date | None = None
    interests: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MedicalProfileUpdate(BaseModel):
    """Direct profile edit outside onboarding. Blank values clear the field."""
    cancer_type: str | None = Field(default=None, max_length=128)
    cancer_stage: str | None = Field(default=None, max_length=64)
    current_treatment: str | None = Field(default=None, max_length=255)

    @field_validator("cancer_type", "cancer_stage", "current_treatment")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class PatientDetail(UserPublic):
    ip_address: str | None = None
    updated_at: datetime | None = None
    medical_profile: MedicalProfileData | None = None
    onboarding_responses: list[OnboardingResponseData] = Field(default_factory=list)


class PatientResponse(BaseModel):
    patient: PatientDetail


class PatientUpdateRequest(BaseModel):
    """
    Account settings update.

    Supplying both password fields changes the password; otherwise only
    the name is updated.
    """
    name: str | None = Field(default=None, max_length=255)
    current_password: str | None = Field(default=None, max_length=128)
    new_password: str | None = Field(default=None, max_length=128)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        cleaned = v.strip()
        if cleaned and len(cleaned) < 2:
            raise ValueError("Name must be at least 2 characters")
        return cleaned or None

    @property
    def is_password_change(self) -> bool:
        return bool(self.current_password and self.new_password)


class PatientUpdateResponse(BaseModel):
    message: str
    patient: UserPublic | None = None
