"""
Pydantic models for the onboarding questionnaire.

Question definitions are stored as JSON on the question row; these models
give them a typed shape on the way in (seeding) and out (API).
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

FINAL_STEP = 3


class QuestionOption(BaseModel):
    """
    One selectable answer.

    Attributes:
        value: Stored answer value.
        label: Display label, templated when ``dynamic_subject`` is set.
        has_popup: Whether choosing this option opens a detail popup.
        popup_type: ``text`` collects fields, ``info`` only shows a message.
        popup_fields: Field names collected into response metadata.
        dynamic_subject: Label contains placeholder tokens.
    """
    value: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    has_popup: bool = False
    popup_type: Literal["text", "info"] | None = None
    popup_message: str | None = None
    popup_fields: list[str] | None = None
    dynamic_subject: bool = False


class DependsOn(BaseModel):
    """Which earlier step personalizes this question."""
    question_step: int | None = Field(default=None, ge=1)
    transform_subject: bool = False
    transform_label: bool = False


class OnboardingQuestionData(BaseModel):
    """A question definition as returned by the Question Resolver."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    step_number: int = Field(..., ge=1)
    question_text: str
    question_type: str = "dropdown"
    options: list[QuestionOption] = Field(default_factory=list)
    depends_on: DependsOn | None = None


class RenderedOption(BaseModel):
    value: str
    label: str
    has_popup: bool = False
    popup_type: str | None = None
    popup_message: str | None = None
    popup_fields: list[str] | None = None


class RenderedQuestion(BaseModel):
    """Question text and options after label substitution."""
    question_text: str
    options: list[RenderedOption]


class QuestionResponse(BaseModel):
    question: OnboardingQuestionData
    rendered: RenderedQuestion


class OnboardingResponseSubmit(BaseModel):
    """
    Answer submission for one onboarding step.

    Attributes:
        question_id: Identity of the answered question.
        step_number: Step being answered (1..3).
        answer: Chosen option value; may not be blank.
        metadata: Popup-collected detail fields.
    """
    question_id: str = Field(..., min_length=1, description="Answered question ID")
    step_number: int = Field(..., ge=1, le=FINAL_STEP, description="Onboarding step")
    answer: str = Field(..., min_length=1, max_length=500, description="Selected answer")
    metadata: dict[str, Any] | None = Field(default=None, description="Popup detail fields")

    @field_validator("answer")
    @classmethod
    def validate_answer(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Answer cannot be empty")
        return cleaned


class OnboardingResponseData(BaseModel):
    """A stored answer."""
    id: str
    question_id: str
    step_number: int
    answer: str
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "OnboardingResponseData":
        # The ORM column is exposed as ``response_metadata``
        return cls(
            id=row.id,
            question_id=row.question_id,
            step_number=row.step_number,
            answer=row.answer,
            metadata=row.response_metadata,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class ResponsesListResponse(BaseModel):
    responses: list[OnboardingResponseData]


class SubmitResponseResult(BaseModel):
    success: bool = True
    response: OnboardingResponseData
    onboarding_complete: bool = False
