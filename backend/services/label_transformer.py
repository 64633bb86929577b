"""
Personalizes onboarding copy based on who the patient is seeking care for.

Question and option text may contain the placeholder tokens defined in
``PlaceholderToken``. The answer to step 1 picks a ``SubjectCategory``
and every category maps to exactly one replacement triple, so the
transform is defined for every input, including a missing answer.
"""

from dataclasses import dataclass
from enum import Enum

from models.onboarding_models import (
    OnboardingQuestionData,
    RenderedOption,
    RenderedQuestion,
)


class PlaceholderToken(str, Enum):
    SUBJECT = "{subject}"
    POSSESSIVE = "{possessive}"
    VERB = "{verb}"


class SubjectCategory(str, Enum):
    """Who the onboarding answers describe."""
    SELF = "self"
    LOVED_ONE = "loved_one"
    OTHER = "other"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Replacements:
    subject: str
    possessive: str
    verb: str

    def for_token(self, token: PlaceholderToken) -> str:
        return {
            PlaceholderToken.SUBJECT: self.subject,
            PlaceholderToken.POSSESSIVE: self.possessive,
            PlaceholderToken.VERB: self.verb,
        }[token]


FIRST_PERSON = Replacements(subject="I", possessive="my", verb="have")
THIRD_PERSON = Replacements(subject="My loved one", possessive="their", verb="has")

# Must cover every SubjectCategory member
CATEGORY_REPLACEMENTS: dict[SubjectCategory, Replacements] = {
    SubjectCategory.SELF: FIRST_PERSON,
    SubjectCategory.LOVED_ONE: THIRD_PERSON,
    SubjectCategory.OTHER: THIRD_PERSON,
    SubjectCategory.UNKNOWN: THIRD_PERSON,
}

SELF_ANSWERS = frozenset({"self", "myself"})
LOVED_ONE_ANSWERS = frozenset({"loved_one", "family", "partner", "parent", "child", "relative"})
OTHER_ANSWERS = frozenset({"friend", "other"})


def categorize_subject(answer: str | None) -> SubjectCategory:
    """Map a raw step-1 answer to a subject category."""
    if answer is None:
        return SubjectCategory.UNKNOWN
    normalized = answer.strip().lower()
    if normalized in SELF_ANSWERS:
        return SubjectCategory.SELF
    if normalized in LOVED_ONE_ANSWERS:
        return SubjectCategory.LOVED_ONE
    if normalized in OTHER_ANSWERS:
        return SubjectCategory.OTHER
    return SubjectCategory.UNKNOWN


def transform_label(text: str, step_one_answer: str | None) -> str:
    """
    Replace placeholder tokens in ``text``.

    Args:
        text: Template text, with or without tokens.
        step_one_answer: The recorded answer to step 1, if any.

    Returns:
        The text with first-person forms when the patient is seeking care
        for themselves and third-person forms otherwise.
    """
    replacements = CATEGORY_REPLACEMENTS[categorize_subject(step_one_answer)]
    for token in PlaceholderToken:
        text = text.replace(token.value, replacements.for_token(token))
    return text


def render_question(
    question: OnboardingQuestionData,
    step_one_answer: str | None,
) -> RenderedQuestion:
    """Apply ``transform_label`` to the question text and to templated option labels."""
    return RenderedQuestion(
        question_text=transform_label(question.question_text, step_one_answer),
        options=[
            RenderedOption(
                value=option.value,
                label=(
                    transform_label(option.label, step_one_answer)
                    if option.dynamic_subject
                    else option.label
                ),
                has_popup=option.has_popup,
                popup_type=option.popup_type,
                popup_message=(
                    transform_label(option.popup_message, step_one_answer)
                    if option.popup_message and option.dynamic_subject
                    else option.popup_message
                ),
                popup_fields=option.popup_fields,
            )
            for option in question.options
        ],
    )
