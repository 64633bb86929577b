"""Tests for the oncology AI service."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from conftest import run
from models.care_models import ConversationTurn, MessageRole, PatientContext
from services.ai_service import (
    DEMO_MODE_NOTICE,
    HIGH_DEMAND_NOTICE,
    ONCOLOGY_SYSTEM_PROMPT,
    OncologyAIService,
    is_rate_limit_error,
    is_service_notice,
)
from services.exceptions import AIServiceError

_REQUEST = httpx.Request("POST", "https://llm.example.com/chat/completions")


def _completion(text: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture
def configured_settings(settings):
    return settings.model_copy(update={"llm_api_key": "test-key"})


@pytest.fixture
def service(configured_settings):
    service = OncologyAIService(configured_settings)
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion("Answer"))
    service._client = client
    return service


def _sent(service):
    return service._client.chat.completions.create.await_args.kwargs


class TestCompletions:
    def test_chat_includes_history_and_context(self, service):
        history = [
            ConversationTurn(role=MessageRole.USER, content="Hi"),
            ConversationTurn(role=MessageRole.ASSISTANT, content="Hello"),
            ConversationTurn(role=MessageRole.USER, content="What is HER2?"),
        ]
        context = PatientContext(cancer_type="breast", stage="stage2", treatment="Chemo")

        assert run(service.chat(history, context)) == "Answer"

        messages = _sent(service)["messages"]
        assert messages[0]["role"] == "system"
        assert messages[0]["content"].startswith(ONCOLOGY_SYSTEM_PROMPT)
        assert "- Cancer Type: breast" in messages[0]["content"]
        assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user"]
        assert _sent(service)["model"] == service.settings.llm_model

    def test_chat_without_context(self, service):
        run(service.chat([ConversationTurn(role=MessageRole.USER, content="Hi")]))
        assert _sent(service)["messages"][0]["content"] == ONCOLOGY_SYSTEM_PROMPT

    def test_second_opinion_uses_dedicated_model(self, service):
        run(service.second_opinion("Is my plan reasonable?", PatientContext()))
        kwargs = _sent(service)
        assert kwargs["model"] == service.settings.llm_second_opinion_model
        assert "Cancer Type: Not specified" in kwargs["messages"][1]["content"]

    def test_diet_prompt(self, service):
        run(service.diet_recommendations("lung", "Radiation", ["fatigue", "nausea"]))
        prompt = _sent(service)["messages"][1]["content"]
        assert "Current Side Effects: fatigue, nausea" in prompt

    def test_treatment_prompt(self, service):
        run(service.treatment_info("prostate", "stage1"))
        prompt = _sent(service)["messages"][1]["content"]
        assert "Current Treatment: None yet" in prompt

    def test_report_prompt(self, service):
        run(service.analyze_report("Hemoglobin 9.1", PatientContext(cancer_type="lung")))
        prompt = _sent(service)["messages"][1]["content"]
        assert "Hemoglobin 9.1" in prompt
        assert "Patient has lung cancer, stage unknown." in prompt


class TestFailures:
    def test_rate_limit_returns_notice(self, service):
        error = openai.RateLimitError(
            "Too many requests",
            response=httpx.Response(429, request=_REQUEST),
            body=None,
        )
        service._client.chat.completions.create.side_effect = error

        assert run(service.treatment_info("lung", "stage2")) == HIGH_DEMAND_NOTICE

    def test_quota_message_returns_notice(self, service):
        error = openai.APIStatusError(
            "Resource exhausted: check quota",
            response=httpx.Response(400, request=_REQUEST),
            body=None,
        )
        service._client.chat.completions.create.side_effect = error

        assert run(service.treatment_info("lung", "stage2")) == HIGH_DEMAND_NOTICE

    def test_other_errors_raise(self, service):
        service._client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=_REQUEST
        )
        with pytest.raises(AIServiceError):
            run(service.treatment_info("lung", "stage2"))

    def test_missing_key_returns_demo_notice(self, settings):
        service = OncologyAIService(settings)
        assert service.configured is False
        assert run(service.treatment_info("lung", "stage2")) == DEMO_MODE_NOTICE

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Error code: 429", True),
            ("Quota exceeded", True),
            ("Rate limit reached", True),
            ("Internal server error", False),
        ],
    )
    def test_rate_limit_detection(self, message, expected):
        assert is_rate_limit_error(Exception(message)) is expected

    def test_empty_choices_raise(self, service):
        service._client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        with pytest.raises(AIServiceError):
            run(service.analyze_report("Hemoglobin 9.1"))

    def test_service_notices_are_recognized(self):
        assert is_service_notice(HIGH_DEMAND_NOTICE)
        assert is_service_notice(DEMO_MODE_NOTICE)
        assert not is_service_notice("Eat more protein")
