"""
Pydantic models for the dashboard care features: AI assistant, reports,
side-effect logging and clinical trial search.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessageRole(str, Enum):
    """Valid roles for chat messages."""
    USER = "user"
    ASSISTANT = "assistant"


class PatientContext(BaseModel):
    """Profile facts used to personalize AI prompts."""
    cancer_type: str | None = None
    stage: str | None = None
    treatment: str | None = None
    interests: list[str] = Field(default_factory=list)


class ConversationTurn(BaseModel):
    role: MessageRole
    content: str


class AIChatRequest(BaseModel):
    """
    Request to send a message to the oncology assistant.

    Attributes:
        message: The user's current message.
        session_id: Optional ID to continue an existing chat session.
    """
    message: str = Field(..., min_length=1, max_length=5000, description="User message")
    session_id: str | None = Field(default=None, description="Existing chat session ID")

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        """Validate and clean the message."""
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Message cannot be empty")
        return cleaned


class AIChatMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: MessageRole
    content: str
    created_at: datetime | None = None


class AIChatResponse(BaseModel):
    session_id: str
    message: AIChatMessage


class TreatmentInfoResponse(BaseModel):
    treatment_info: str


class DietRequest(BaseModel):
    side_effects: list[str] = Field(default_factory=list, max_length=50)


class DietResponse(BaseModel):
    recommendations: str


class SecondOpinionRequest(BaseModel):
    query: str = Field(..., max_length=5000)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        cleaned = v.strip()
        if len(cleaned) < 10:
            raise ValueError("Please provide more detail")
        return cleaned


class SecondOpinionResponse(BaseModel):
    analysis: str


class ReportCreate(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    file_type: str = Field(default="text", max_length=32)


class ReportData(BaseModel):
    """Report summary without the raw content."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    file_type: str
    analysis_status: str
    ai_analysis: dict[str, Any] | None = None
    created_at: datetime | None = None


class ReportDetail(ReportData):
    content: str
    updated_at: datetime | None = None


class ReportListResponse(BaseModel):
    reports: list[ReportData]


class ReportResponse(BaseModel):
    report: ReportDetail


class ReportAnalyzeRequest(BaseModel):
    report_text: str | None = Field(default=None, max_length=100000)


class ReportAnalyzeResponse(BaseModel):
    report: ReportDetail
    analysis: str


class SideEffectCreate(BaseModel):
    symptom: str = Field(..., min_length=1, max_length=200)
    severity: int = Field(..., ge=1, le=10)
    notes: str | None = Field(default=None, max_length=1000)


class SideEffectData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    symptom: str
    severity: int
    notes: str | None = None
    logged_at: datetime | None = None


class SideEffectListResponse(BaseModel):
    logs: list[SideEffectData]


class SideEffectResponse(BaseModel):
    log: SideEffectData


class TrialStatus(str, Enum):
    """Status filters exposed to the client."""
    RECRUITING = "recruiting"
    NOT_YET_RECRUITING = "not_yet_recruiting"
    ACTIVE = "active"
    COMPLETED = "completed"


class ClinicalTrial(BaseModel):
    id: str
    title: str
    status: str
    phase: str = ""
    conditions: list[str] = Field(default_factory=list)
    description: str = ""
    url: str
    location: str = ""
    last_updated: str = ""


class ClinicalTrialsResponse(BaseModel):
    trials: list[ClinicalTrial]
