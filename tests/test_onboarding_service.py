"""Unit tests for onboarding profile derivation and recording."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from conftest import run
from database.database import Database
from database.tables import (
    AccessingFor,
    MedicalProfile,
    OnboardingQuestion,
    OnboardingResponse,
    User,
)
from models.onboarding_models import OnboardingResponseSubmit
from services import onboarding_service
from services.cache_service import CacheClient
from services.exceptions import NotFoundError
from services.question_catalog import seed_questions


def _responses(*answers):
    return [
        SimpleNamespace(step_number=step, answer=answer)
        for step, answer in answers
    ]


class TestDeriveProfile:
    def test_complete_answers(self):
        derived = onboarding_service.derive_profile(
            _responses((1, "self"), (2, "breast_cancer"), (3, "stage_2"))
        )
        assert derived.accessing_for == AccessingFor.SELF
        assert derived.cancer_type == "breast_cancer"
        assert derived.cancer_stage == "stage_2"
        assert derived.current_treatment == "Not Started"
        assert derived.interests == []

    def test_no_answers(self):
        derived = onboarding_service.derive_profile([])
        assert derived.cancer_type is None
        assert derived.cancer_stage is None
        assert derived.accessing_for == AccessingFor.SELF

    @pytest.mark.parametrize(
        "answer, expected",
        [
            ("myself", AccessingFor.SELF),
            ("loved_one", AccessingFor.LOVED_ONE),
            ("family", AccessingFor.LOVED_ONE),
            ("friend", AccessingFor.OTHER),
            ("something else", AccessingFor.SELF),
            (None, AccessingFor.SELF),
        ],
    )
    def test_accessing_for_mapping(self, answer, expected):
        assert onboarding_service.derive_accessing_for(answer) == expected


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.connect()
    db.create_tables()
    yield db
    db.disconnect()


@pytest.fixture
def session(database):
    session = database.session()
    seed_questions(session)
    user = User(id="user-1", patient_id="ZNR-TEST00001", email="p@example.com")
    session.add(user)
    session.commit()
    yield session
    session.close()


@pytest.fixture
def cache():
    cache = CacheClient(None)
    cache.invalidate = AsyncMock(return_value=0)
    return cache


def _submit(session, cache, step, answer, question_id=None):
    submission = OnboardingResponseSubmit(
        question_id=question_id or f"clx{step}", step_number=step, answer=answer
    )
    return run(onboarding_service.submit_response(session, cache, "user-1", submission, "10.0.0.1"))


class TestSubmitResponse:
    def test_intermediate_step_does_not_touch_profile(self, session, cache):
        result = _submit(session, cache, 1, "myself")

        assert result.onboarding_complete is False
        assert session.get(User, "user-1").onboarding_done is False
        cache.invalidate.assert_not_awaited()

    def test_final_step_invalidates_patient_cache(self, session, cache):
        _submit(session, cache, 1, "family")
        _submit(session, cache, 2, "lung")
        result = _submit(session, cache, 3, "stage2")

        assert result.onboarding_complete is True
        cache.invalidate.assert_awaited_once_with("patient:user-1:*")

        profile = session.query(MedicalProfile).filter_by(user_id="user-1").one()
        assert profile.accessing_for == "LOVED_ONE"
        assert profile.cancer_type == "lung"

    def test_records_ip_address(self, session, cache):
        _submit(session, cache, 1, "myself")
        rows = onboarding_service.list_responses(session, "user-1")
        assert rows[0].ip_address == "10.0.0.1"

    def test_unknown_question(self, session, cache):
        with pytest.raises(NotFoundError):
            _submit(session, cache, 1, "myself", question_id="nope")

    def test_get_question_outside_range(self, session):
        with pytest.raises(NotFoundError):
            onboarding_service.get_question(session, 0)
        with pytest.raises(NotFoundError):
            onboarding_service.get_question(session, 4)

    def test_inactive_question_is_not_found(self, session):
        row = session.query(OnboardingQuestion).filter_by(step_number=2).one()
        row.is_active = False
        session.commit()

        with pytest.raises(NotFoundError):
            onboarding_service.get_question(session, 2)

    def test_seeding_twice_keeps_one_row_per_step(self, session):
        seed_questions(session)
        assert session.query(OnboardingQuestion).count() == 3


class TestResponseUpsert:
    def test_resubmission_updates_the_same_row(self, session, cache):
        first = _submit(session, cache, 2, "lung")
        second = _submit(session, cache, 2, "breast")

        assert second.response.id == first.response.id
        rows = onboarding_service.list_responses(session, "user-1")
        assert [(r.step_number, r.answer) for r in rows] == [(2, "breast")]

    def test_row_written_by_another_session_is_updated(self, database, session, cache):
        other = database.session()
        try:
            other.add(OnboardingResponse(
                user_id="user-1", question_id="clx1", step_number=1, answer="friend"
            ))
            other.commit()
        finally:
            other.close()

        result = _submit(session, cache, 1, "myself")

        assert result.response.answer == "myself"
        assert session.query(OnboardingResponse).filter_by(user_id="user-1").count() == 1

    def test_omitted_metadata_is_kept(self, session, cache):
        submission = OnboardingResponseSubmit(
            question_id="clx1", step_number=1, answer="family", metadata={"relation": "sister"}
        )
        run(onboarding_service.submit_response(session, cache, "user-1", submission))
        _submit(session, cache, 1, "family")

        row = onboarding_service.list_responses(session, "user-1")[0]
        assert row.response_metadata == {"relation": "sister"}
