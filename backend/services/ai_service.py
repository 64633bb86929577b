"""
Oncology AI service.

This service handles:
- Patient chat with profile-aware context
- Medical report analysis
- Diet & lifestyle recommendations
- Treatment option overviews
- Second opinion analysis

Talks to any OpenAI-compatible endpoint (Gemini by default). Rate-limit
failures are turned into a readable service notice; other provider
failures raise AIServiceError so the API can answer with a clean 502.
"""

import time
from collections.abc import Sequence

from fastapi import Request
from openai import AsyncOpenAI, OpenAIError, RateLimitError

from config.config import Settings
from config.logging_config import get_logger
from models.care_models import ConversationTurn, MessageRole, PatientContext
from services.exceptions import AIServiceError

logger = get_logger(__name__)


ONCOLOGY_SYSTEM_PROMPT = """You are Zinara AI, a physician-informed, AI-powered oncology assistant.
You provide evidence-based information about cancer care, treatment options, clinical trials,
diet and lifestyle recommendations, and side effect management.

IMPORTANT GUIDELINES:
- Always clarify you are an AI assistant and NOT a replacement for medical professionals.
- Provide evidence-based information with references when possible.
- Be empathetic and supportive in your responses.
- If a question is outside your scope, recommend consulting an oncologist.
- Never diagnose conditions or prescribe medications.
- Use clear, accessible language while being medically accurate.
- When discussing treatment options, always mention to discuss with their healthcare team."""

HIGH_DEMAND_NOTICE = """### Service Notice: High Demand

The AI assistant is currently experiencing high request volume (Rate Limit Exceeded).

**Please wait a minute before trying again.**

In the meantime, reliable sources for information include:
*   [National Cancer Institute](https://www.cancer.gov)
*   [American Cancer Society](https://www.cancer.org)"""

DEMO_MODE_NOTICE = """### Service Notice: Demo Mode

The AI assistant is not configured on this server, so no personalized answer can be generated.

Please contact support, or visit the [National Cancer Institute](https://www.cancer.gov) for reliable information."""

NOT_SPECIFIED = "Not specified"

_RATE_LIMIT_MARKERS = ("429", "quota", "rate limit")
SERVICE_NOTICES = (HIGH_DEMAND_NOTICE, DEMO_MODE_NOTICE)


def is_rate_limit_error(error: Exception) -> bool:
    if isinstance(error, RateLimitError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def is_service_notice(text: str) -> bool:
    """True for the placeholder notices returned instead of a generated answer."""
    return text in SERVICE_NOTICES


def build_patient_context_block(context: PatientContext) -> str:
    return (
        "Patient Context (use to personalize responses):\n"
        f"- Cancer Type: {context.cancer_type or NOT_SPECIFIED}\n"
        f"- Stage: {context.stage or NOT_SPECIFIED}\n"
        f"- Current Treatment: {context.treatment or NOT_SPECIFIED}\n"
        f"- Areas of Interest: {', '.join(context.interests) or 'General'}"
    )


class OncologyAIService:
    """
    Prompt templates and provider calls for the dashboard AI features.

    Stateless apart from the lazily created client; one instance is shared
    through ``app.state``.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client: AsyncOpenAI | None = None

    @property
    def configured(self) -> bool:
        return self.settings.llm_configured

    @property
    def client(self) -> AsyncOpenAI:
        """
        Get or create the provider client.

        Lazily initialized to avoid issues during testing.
        """
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.llm_api_key or "dummy",
                base_url=self.settings.llm_base_url,
                timeout=self.settings.llm_timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _complete(
        self,
        messages: list[dict[str, str]],
        context: str,
        model: str | None = None,
    ) -> str:
        """
        Run one chat completion.

        Returns:
            The assistant text, or a service notice when the provider is
            rate limited or not configured.

        Raises:
            AIServiceError: For any other provider failure.
        """
        if not self.configured:
            logger.warning("LLM API key not configured, returning demo notice", context=context)
            return DEMO_MODE_NOTICE

        start_time = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=model or self.settings.llm_model,
                messages=messages,
                max_tokens=self.settings.llm_max_tokens,
                temperature=self.settings.llm_temperature,
                top_p=self.settings.llm_top_p,
            )
        except OpenAIError as e:
            if is_rate_limit_error(e):
                logger.warning("LLM rate limited", context=context, error=str(e))
                return HIGH_DEMAND_NOTICE
            logger.error("LLM API error", context=context, error=str(e))
            raise AIServiceError(
                "The AI assistant is temporarily unavailable. Please try again shortly."
            ) from e

        if not response.choices:
            logger.error("LLM returned no choices", context=context)
            raise AIServiceError(
                "The AI assistant returned an empty response. Please try again shortly."
            )

        text = response.choices[0].message.content or ""
        logger.info(
            "LLM response generated",
            context=context,
            response_length=len(text),
            processing_time_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return text

    async def chat(
        self,
        history: Sequence[ConversationTurn],
        patient_context: PatientContext | None = None,
    ) -> str:
        """
        Continue a conversation.

        Args:
            history: Prior turns followed by the new user message.
            patient_context: Profile facts appended to the system prompt.
        """
        system_prompt = ONCOLOGY_SYSTEM_PROMPT
        if patient_context:
            system_prompt += "\n\n" + build_patient_context_block(patient_context)

        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(
            {
                "role": "assistant" if turn.role == MessageRole.ASSISTANT else "user",
                "content": turn.content,
            }
            for turn in history
        )
        return await self._complete(messages, context="chat")

    async def analyze_report(self, report_text: str, patient_context: PatientContext | None = None) -> str:
        patient_line = ""
        if patient_context:
            patient_line = (
                f"Patient has {patient_context.cancer_type or 'unknown'} cancer, "
                f"stage {patient_context.stage or 'unknown'}."
            )

        prompt = f"""Analyze the following medical report and provide:
1. **Summary**: A clear, patient-friendly summary of the key findings
2. **Key Metrics**: Important values and what they mean
3. **Areas of Concern**: Any values or findings that may need attention
4. **Recommended Questions**: Questions the patient should ask their doctor
5. **Next Steps**: General recommended follow-up actions

{patient_line}

Report Content:
{report_text}

IMPORTANT: Remind the patient this is AI-assisted analysis and should be reviewed with their oncologist."""
        return await self._complete(self._single_turn(prompt), context="analyze_report")

    async def diet_recommendations(
        self, cancer_type: str, treatment: str, side_effects: Sequence[str]
    ) -> str:
        prompt = f"""Provide personalized diet and lifestyle recommendations for:
- Cancer Type: {cancer_type}
- Current Treatment: {treatment}
- Current Side Effects: {', '.join(side_effects) or 'None reported'}

Structure your response as:
1. **Recommended Foods**: Foods that may benefit during this treatment
2. **Foods to Avoid**: Foods that may interfere with treatment or worsen side effects
3. **Meal Plan Suggestions**: Simple meal ideas for the week
4. **Lifestyle Tips**: Exercise, sleep, and stress management recommendations
5. **Supplements to Discuss**: Supplements to ask their doctor about

Always emphasize consulting with their healthcare team before making dietary changes."""
        return await self._complete(self._single_turn(prompt), context="diet")

    async def treatment_info(
        self, cancer_type: str, stage: str, current_treatment: str | None = None
    ) -> str:
        prompt = f"""Provide information about treatment options for:
- Cancer Type: {cancer_type}
- Stage: {stage}
- Current Treatment: {current_treatment or 'None yet'}

Structure your response as:
1. **Overview**: Brief overview of this cancer type and stage
2. **Standard Treatment Options**: Evidence-based treatment approaches
3. **Emerging Therapies**: Recent breakthroughs and newer options
4. **Clinical Trials**: Types of clinical trials that may be relevant
5. **Questions for Your Oncologist**: Important questions to ask at next appointment

CRITICAL: Emphasize that treatment decisions should always be made with their oncology team."""
        return await self._complete(self._single_turn(prompt), context="treatment")

    async def second_opinion(self, query: str, patient_context: PatientContext) -> str:
        prompt = f"""You are providing an AI-generated second opinion analysis. This is NOT a clinical diagnosis.

Patient context:
- Cancer Type: {patient_context.cancer_type or NOT_SPECIFIED}
- Stage: {patient_context.stage or NOT_SPECIFIED}
- Current Treatment: {patient_context.treatment or NOT_SPECIFIED}

Patient's Question/Situation:
{query}

Provide a thorough analysis with the following structure:
1. **Understanding of Your Situation**: Summarize what you understand
2. **Analysis of Current Approach**: Evaluate the current treatment plan
3. **Alternative Considerations**: Other approaches worth discussing with their oncologist
4. **Latest Research & Evidence**: Recent developments relevant to their case
5. **Questions to Ask Your Doctor**: Specific questions to bring to their next appointment
6. **Important Considerations**: Factors that might influence treatment decisions

CRITICAL DISCLAIMER: This is AI-generated educational information only. A proper second opinion requires a full review of medical records by a qualified oncologist. Always discuss any changes with your healthcare team."""
        return await self._complete(
            self._single_turn(prompt),
            context="second_opinion",
            model=self.settings.llm_second_opinion_model,
        )

    @staticmethod
    def _single_turn(prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": ONCOLOGY_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]


def get_ai_service(request: Request) -> OncologyAIService:
    """FastAPI dependency returning the app's AI service."""
    return request.app.state.ai_service
