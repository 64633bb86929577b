"""
Onboarding service.

This service handles:
- Question lookup by step, personalized for the current patient
- Recording answers, one row per (patient, step)
- Deriving the medical profile when the final step is answered

The final step runs inside a single transaction: the answer, the derived
profile and the onboarding-complete flag are committed together or not
at all.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config.logging_config import get_logger
from database.database import transaction
from database.tables import (
    AccessingFor,
    MedicalProfile,
    OnboardingQuestion,
    OnboardingResponse,
    User,
    utcnow,
)
from models.onboarding_models import (
    FINAL_STEP,
    OnboardingQuestionData,
    OnboardingResponseData,
    OnboardingResponseSubmit,
    QuestionResponse,
    SubmitResponseResult,
)
from services.cache_service import CacheClient, patient_cache_pattern
from services.exceptions import InvalidRequestError, NotFoundError, OnboardingError, ServiceError
from services.label_transformer import SubjectCategory, categorize_subject, render_question

logger = get_logger(__name__)

DEFAULT_CURRENT_TREATMENT = "Not Started"

_UPSERT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}

# Table columns whose mapped attribute has a different name
_COLUMN_ATTRIBUTES = {"metadata": "response_metadata"}

_CATEGORY_TO_ACCESSING_FOR: dict[SubjectCategory, AccessingFor] = {
    SubjectCategory.SELF: AccessingFor.SELF,
    SubjectCategory.LOVED_ONE: AccessingFor.LOVED_ONE,
    SubjectCategory.OTHER: AccessingFor.OTHER,
    SubjectCategory.UNKNOWN: AccessingFor.SELF,
}


@dataclass(frozen=True)
class DerivedProfile:
    """Profile fields computed from the three onboarding answers."""
    cancer_type: str | None
    cancer_stage: str | None
    accessing_for: AccessingFor
    current_treatment: str = DEFAULT_CURRENT_TREATMENT
    interests: list[str] = field(default_factory=list)


# ============================================================================
# Question Resolver
# ============================================================================

def get_question(session: Session, step: int) -> OnboardingQuestionData:
    """
    Look up the question definition for a step.

    Raises:
        NotFoundError: If the step is outside the sequence or not seeded.
    """
    if step < 1 or step > FINAL_STEP:
        raise NotFoundError("Question not found")

    row = session.scalar(
        select(OnboardingQuestion).where(
            OnboardingQuestion.step_number == step,
            OnboardingQuestion.is_active.is_(True),
        )
    )
    if row is None:
        raise NotFoundError("Question not found")
    return OnboardingQuestionData.model_validate(row)


def list_responses(session: Session, user_id: str) -> list[OnboardingResponse]:
    """All recorded answers for a patient, ordered by step."""
    return list(
        session.scalars(
            select(OnboardingResponse)
            .where(OnboardingResponse.user_id == user_id)
            .order_by(OnboardingResponse.step_number)
        )
    )


def get_question_for_user(session: Session, user_id: str, step: int) -> QuestionResponse:
    """
    Resolve a question and personalize it from the patient's earlier answer.

    The answer consulted is the one for the step named in the question's
    dependency descriptor, falling back to step 1.
    """
    question = get_question(session, step)
    source_step = 1
    if question.depends_on and question.depends_on.question_step:
        source_step = question.depends_on.question_step

    answers = {r.step_number: r.answer for r in list_responses(session, user_id)}
    rendered = render_question(question, answers.get(source_step))

    logger.debug(
        "Question resolved",
        step=step,
        subject_category=categorize_subject(answers.get(source_step)).value,
    )
    return QuestionResponse(question=question, rendered=rendered)


# ============================================================================
# Response Recorder
# ============================================================================

def derive_accessing_for(step_one_answer: str | None) -> AccessingFor:
    """Map the step-1 answer to a profile category, defaulting to SELF."""
    return _CATEGORY_TO_ACCESSING_FOR[categorize_subject(step_one_answer)]


def derive_profile(responses: Sequence[OnboardingResponse]) -> DerivedProfile:
    """Compute profile fields from recorded answers. Pure."""
    answers = {r.step_number: r.answer for r in responses}
    return DerivedProfile(
        cancer_type=answers.get(2) or None,
        cancer_stage=answers.get(3) or None,
        accessing_for=derive_accessing_for(answers.get(1)),
    )


def _response_values(submission: OnboardingResponseSubmit, ip_address: str | None) -> dict:
    table = OnboardingResponse.__table__
    values = {
        table.c.question_id: submission.question_id,
        table.c.answer: submission.answer,
        table.c.ip_address: ip_address,
    }
    # Omitted metadata leaves previously collected details in place
    if submission.metadata is not None:
        values[table.c["metadata"]] = submission.metadata
    return values


def _find_response(session: Session, user_id: str, step: int) -> OnboardingResponse | None:
    return session.scalar(
        select(OnboardingResponse)
        .where(OnboardingResponse.user_id == user_id, OnboardingResponse.step_number == step)
        .execution_options(populate_existing=True)
    )


def _upsert_response(
    session: Session,
    user_id: str,
    submission: OnboardingResponseSubmit,
    ip_address: str | None,
) -> OnboardingResponse:
    """
    Insert or update the (patient, step) answer.

    Uses a single INSERT ... ON CONFLICT statement where the dialect has
    one, so two first submissions of the same step racing each other end
    as one updated row instead of a unique constraint failure.
    """
    table = OnboardingResponse.__table__
    values = _response_values(submission, ip_address)
    dialect_insert = _UPSERT_INSERTS.get(session.get_bind().dialect.name)

    if dialect_insert is None:
        row = _find_response(session, user_id, submission.step_number)
        if row is None:
            row = OnboardingResponse(user_id=user_id, step_number=submission.step_number)
            session.add(row)
        for column, value in values.items():
            setattr(row, _COLUMN_ATTRIBUTES.get(column.name, column.name), value)
        return row

    statement = dialect_insert(table).values(
        {table.c.user_id: user_id, table.c.step_number: submission.step_number, **values}
    )
    statement = statement.on_conflict_do_update(
        index_elements=[table.c.user_id, table.c.step_number],
        set_={**values, table.c.updated_at: utcnow()},
    )
    session.execute(statement)
    return _find_response(session, user_id, submission.step_number)


def _complete_onboarding(session: Session, user_id: str) -> DerivedProfile:
    """Write the derived profile and flip the completion flag."""
    session.flush()
    derived = derive_profile(list_responses(session, user_id))

    profile = session.scalar(select(MedicalProfile).where(MedicalProfile.user_id == user_id))
    if profile is None:
        profile = MedicalProfile(user_id=user_id)
        session.add(profile)

    # Full overwrite, not a merge
    profile.cancer_type = derived.cancer_type
    profile.cancer_stage = derived.cancer_stage
    profile.accessing_for = derived.accessing_for.value
    profile.current_treatment = derived.current_treatment
    profile.interests = list(derived.interests)

    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    user.onboarding_done = True
    return derived


def _record_response(
    session: Session,
    user_id: str,
    submission: OnboardingResponseSubmit,
    ip_address: str | None,
) -> tuple[OnboardingResponse, DerivedProfile | None]:
    """Synchronous unit of work behind ``submit_response``."""
    question = session.get(OnboardingQuestion, submission.question_id)
    if question is None:
        raise NotFoundError("Question not found")
    if question.step_number != submission.step_number:
        raise InvalidRequestError(
            f"Question {submission.question_id} does not belong to step {submission.step_number}"
        )

    is_final = submission.step_number == FINAL_STEP
    derived = None
    try:
        with transaction(session):
            row = _upsert_response(session, user_id, submission, ip_address)
            if is_final:
                derived = _complete_onboarding(session, user_id)
    except ServiceError:
        raise
    except Exception as e:
        if not is_final:
            raise
        logger.exception("Onboarding derivation failed", user_id=user_id, error=str(e))
        raise OnboardingError("Failed to complete onboarding. Please try again.") from e
    return row, derived


async def submit_response(
    session: Session,
    cache: CacheClient,
    user_id: str,
    submission: OnboardingResponseSubmit,
    ip_address: str | None = None,
) -> SubmitResponseResult:
    """
    Record an answer and, on the final step, complete onboarding.

    Args:
        session: Database session.
        cache: Cache whose patient entries are invalidated on completion.
        user_id: Authenticated patient.
        submission: Validated answer.
        ip_address: Client address recorded with the answer.

    Raises:
        NotFoundError: Unknown question.
        InvalidRequestError: Question belongs to a different step.
        OnboardingError: Final-step derivation failed (nothing committed).
    """
    row, derived = await asyncio.to_thread(
        _record_response, session, user_id, submission, ip_address
    )

    logger.info(
        "Onboarding response recorded",
        user_id=user_id,
        step=submission.step_number,
    )

    if derived is not None:
        logger.info(
            "Onboarding completed",
            user_id=user_id,
            accessing_for=derived.accessing_for.value,
            cancer_type=derived.cancer_type,
            cancer_stage=derived.cancer_stage,
        )
        await cache.invalidate(patient_cache_pattern(user_id))

    return SubmitResponseResult(
        response=OnboardingResponseData.from_row(row),
        onboarding_complete=derived is not None,
    )
