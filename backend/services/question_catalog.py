"""
Onboarding question catalog.

Defines the fixed three-step questionnaire shown to new patients and
seeds it into the database.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from config.logging_config import get_logger
from database.database import transaction
from database.tables import OnboardingQuestion
from models.onboarding_models import DependsOn, OnboardingQuestionData, QuestionOption

logger = get_logger(__name__)


# ============================================================================
# Question Definitions
# ============================================================================

SEEKING_CARE_FOR = OnboardingQuestionData(
    id="clx1",
    step_number=1,
    question_text="I am seeking care for:",
    question_type="dropdown",
    options=[
        QuestionOption(value="myself", label="Myself"),
        QuestionOption(value="family", label="A Family Member"),
        QuestionOption(value="friend", label="A Friend"),
    ],
)

CANCER_TYPE = OnboardingQuestionData(
    id="clx2",
    step_number=2,
    question_text="What type of cancer does {subject} have?",
    question_type="dropdown",
    options=[
        QuestionOption(value="breast", label="Breast Cancer", dynamic_subject=True),
        QuestionOption(value="lung", label="Lung Cancer", dynamic_subject=True),
        QuestionOption(value="prostate", label="Prostate Cancer", dynamic_subject=True),
        QuestionOption(value="colorectal", label="Colorectal Cancer", dynamic_subject=True),
        QuestionOption(
            value="other",
            label="Other",
            dynamic_subject=True,
            has_popup=True,
            popup_type="text",
            popup_message="Which type of cancer {verb} been diagnosed?",
            popup_fields=["cancer_type_detail"],
        ),
    ],
    depends_on=DependsOn(question_step=1, transform_subject=True),
)

CANCER_STAGE = OnboardingQuestionData(
    id="clx3",
    step_number=3,
    question_text="What is {possessive} cancer stage?",
    question_type="dropdown",
    options=[
        QuestionOption(value="stage0", label="Stage 0", dynamic_subject=True),
        QuestionOption(value="stage1", label="Stage I", dynamic_subject=True),
        QuestionOption(value="stage2", label="Stage II", dynamic_subject=True),
        QuestionOption(value="stage3", label="Stage III", dynamic_subject=True),
        QuestionOption(value="stage4", label="Stage IV", dynamic_subject=True),
        QuestionOption(
            value="unsure",
            label="Not Sure",
            dynamic_subject=True,
            has_popup=True,
            popup_type="info",
            popup_message="That's okay. You can update {possessive} stage later from the profile page.",
        ),
    ],
    depends_on=DependsOn(question_step=1, transform_subject=True),
)

QUESTION_CATALOG: list[OnboardingQuestionData] = [
    SEEKING_CARE_FOR,
    CANCER_TYPE,
    CANCER_STAGE,
]


def seed_questions(session: Session) -> int:
    """
    Upsert the catalog keyed by step number.

    Existing rows keep their identity so stored responses stay linked.

    Returns:
        Number of questions written.
    """
    with transaction(session):
        for definition in QUESTION_CATALOG:
            row = session.scalar(
                select(OnboardingQuestion).where(
                    OnboardingQuestion.step_number == definition.step_number
                )
            )
            if row is None:
                row = OnboardingQuestion(id=definition.id, step_number=definition.step_number)
                session.add(row)

            row.question_text = definition.question_text
            row.question_type = definition.question_type
            row.options = [
                option.model_dump(exclude_none=True) for option in definition.options
            ]
            row.depends_on = (
                definition.depends_on.model_dump(exclude_none=True)
                if definition.depends_on
                else None
            )
            row.is_active = True

    logger.info("Onboarding questions seeded", count=len(QUESTION_CATALOG))
    return len(QUESTION_CATALOG)
