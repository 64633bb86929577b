"""
Dashboard care features backed by the patient database.

This service handles:
- AI chat sessions and their message history
- Medical report storage and AI analysis
- Side effect logging

All lookups are scoped to the owning patient; another patient's record
is reported as not found.
"""

import asyncio
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from config.logging_config import get_logger
from database.database import transaction
from database.tables import (
    AnalysisStatus,
    ChatMessage,
    ChatSession,
    MedicalProfile,
    Report,
    SideEffectLog,
    utcnow,
)
from models.care_models import (
    AIChatMessage,
    AIChatResponse,
    ConversationTurn,
    MessageRole,
    PatientContext,
    ReportCreate,
    SideEffectCreate,
)
from services.ai_service import OncologyAIService, is_service_notice
from services.exceptions import InvalidRequestError, NotFoundError
from services.patient_service import get_medical_profile

logger = get_logger(__name__)

CHAT_HISTORY_LIMIT = 50
SESSION_TITLE_LENGTH = 50
SIDE_EFFECT_LIST_LIMIT = 100


def patient_context_from_profile(profile: MedicalProfile | None) -> PatientContext | None:
    if profile is None:
        return None
    return PatientContext(
        cancer_type=profile.cancer_type,
        stage=profile.cancer_stage,
        treatment=profile.current_treatment,
        interests=list(profile.interests or []),
    )


# ============================================================================
# Chat
# ============================================================================

def _find_session(session: Session, user_id: str, session_id: str) -> ChatSession:
    chat_session = session.scalar(
        select(ChatSession).where(
            ChatSession.id == session_id, ChatSession.user_id == user_id
        )
    )
    if chat_session is None:
        raise NotFoundError("Chat session not found")
    return chat_session


def _recent_history(session: Session, session_id: str) -> list[ConversationTurn]:
    rows: Sequence[ChatMessage] = session.scalars(
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.desc())
        .limit(CHAT_HISTORY_LIMIT)
    ).all()
    return [
        ConversationTurn(role=MessageRole(row.role), content=row.content)
        for row in reversed(rows)
    ]


def _load_chat(
    session: Session, user_id: str, session_id: str | None
) -> tuple[ChatSession | None, list[ConversationTurn], PatientContext | None]:
    # Ends the read transaction so no connection is held during the provider call
    with transaction(session):
        chat_session = _find_session(session, user_id, session_id) if session_id else None
        history = _recent_history(session, chat_session.id) if chat_session else []
        context = patient_context_from_profile(get_medical_profile(session, user_id))
    return chat_session, history, context


def _store_turn(
    session: Session,
    user_id: str,
    chat_session: ChatSession | None,
    message: str,
    reply: str,
) -> tuple[ChatSession, ChatMessage]:
    with transaction(session):
        if chat_session is None:
            chat_session = ChatSession(user_id=user_id, title=message[:SESSION_TITLE_LENGTH])
            session.add(chat_session)
            session.flush()
        session.add(ChatMessage(
            session_id=chat_session.id, role=MessageRole.USER.value, content=message
        ))
        session.flush()
        assistant_message = ChatMessage(
            session_id=chat_session.id, role=MessageRole.ASSISTANT.value, content=reply
        )
        session.add(assistant_message)
        chat_session.updated_at = utcnow()
    return chat_session, assistant_message


async def chat(
    session: Session,
    ai_service: OncologyAIService,
    user_id: str,
    message: str,
    session_id: str | None = None,
) -> AIChatResponse:
    """
    Send a message to the assistant within a chat session.

    A new session is created when ``session_id`` is omitted. The session,
    the user message and the reply are stored together once the reply is
    available, so a failed provider call leaves nothing behind.
    """
    chat_session, history, context = await asyncio.to_thread(
        _load_chat, session, user_id, session_id
    )
    history.append(ConversationTurn(role=MessageRole.USER, content=message))

    reply = await ai_service.chat(history, context)

    chat_session, assistant_message = await asyncio.to_thread(
        _store_turn, session, user_id, chat_session, message, reply
    )

    logger.info("Chat turn stored", user_id=user_id, session_id=chat_session.id)
    return AIChatResponse(
        session_id=chat_session.id,
        message=AIChatMessage.model_validate(assistant_message),
    )


# ============================================================================
# Reports
# ============================================================================

def list_reports(session: Session, user_id: str) -> list[Report]:
    return list(
        session.scalars(
            select(Report)
            .where(Report.user_id == user_id)
            .order_by(Report.created_at.desc())
        )
    )


def get_report(session: Session, user_id: str, report_id: str) -> Report:
    report = session.scalar(
        select(Report).where(Report.id == report_id, Report.user_id == user_id)
    )
    if report is None:
        raise NotFoundError("Report not found")
    return report


def create_report(session: Session, user_id: str, request: ReportCreate) -> Report:
    report = Report(
        user_id=user_id,
        file_name=request.file_name,
        file_type=request.file_type,
        content=request.content,
    )
    with transaction(session):
        session.add(report)
    logger.info("Report stored", user_id=user_id, report_id=report.id)
    return report


def delete_report(session: Session, user_id: str, report_id: str) -> None:
    report = get_report(session, user_id, report_id)
    with transaction(session):
        session.delete(report)
    logger.info("Report deleted", user_id=user_id, report_id=report_id)


def _start_analysis(
    session: Session, user_id: str, report_id: str, report_text: str | None
) -> tuple[Report, str, PatientContext | None]:
    with transaction(session):
        report = get_report(session, user_id, report_id)
        text = (report_text or "").strip() or report.content
        if not text:
            raise InvalidRequestError("Report text is required")
        context = patient_context_from_profile(get_medical_profile(session, user_id))
        report.analysis_status = AnalysisStatus.ANALYZING.value
    return report, text, context


def _finish_analysis(
    session: Session, report: Report, status: AnalysisStatus, analysis: str | None = None
) -> None:
    with transaction(session):
        report.analysis_status = status.value
        if analysis is not None:
            report.ai_analysis = {"raw": analysis, "analyzed_at": utcnow().isoformat()}


async def analyze_report(
    session: Session,
    ai_service: OncologyAIService,
    user_id: str,
    report_id: str,
    report_text: str | None = None,
) -> tuple[Report, str]:
    """
    Run AI analysis on a stored report.

    Uses ``report_text`` when given, otherwise the stored content. The
    report moves to ANALYZING, then COMPLETED or FAILED. A service notice
    in place of an analysis is returned to the caller but leaves the
    report FAILED with no stored analysis.

    Raises:
        NotFoundError: Unknown report.
        InvalidRequestError: Nothing to analyze.
        AIServiceError: Provider failure (report left FAILED).
    """
    report, text, context = await asyncio.to_thread(
        _start_analysis, session, user_id, report_id, report_text
    )

    try:
        analysis = await ai_service.analyze_report(text, context)
    except Exception as e:
        await asyncio.to_thread(_finish_analysis, session, report, AnalysisStatus.FAILED)
        logger.warning(
            "Report analysis failed", user_id=user_id, report_id=report_id, error=str(e)
        )
        raise

    if is_service_notice(analysis):
        await asyncio.to_thread(_finish_analysis, session, report, AnalysisStatus.FAILED)
        logger.warning("Report analysis unavailable", user_id=user_id, report_id=report_id)
        return report, analysis

    await asyncio.to_thread(
        _finish_analysis, session, report, AnalysisStatus.COMPLETED, analysis
    )
    logger.info("Report analyzed", user_id=user_id, report_id=report_id)
    return report, analysis


# ============================================================================
# Side effects
# ============================================================================

def list_side_effects(session: Session, user_id: str) -> list[SideEffectLog]:
    return list(
        session.scalars(
            select(SideEffectLog)
            .where(SideEffectLog.user_id == user_id)
            .order_by(SideEffectLog.logged_at.desc())
            .limit(SIDE_EFFECT_LIST_LIMIT)
        )
    )


def log_side_effect(session: Session, user_id: str, request: SideEffectCreate) -> SideEffectLog:
    entry = SideEffectLog(
        user_id=user_id,
        symptom=request.symptom.strip(),
        severity=request.severity,
        notes=request.notes,
    )
    with transaction(session):
        session.add(entry)
    logger.info("Side effect logged", user_id=user_id, severity=request.severity)
    return entry


def delete_side_effect(session: Session, user_id: str, log_id: str) -> None:
    entry = session.scalar(
        select(SideEffectLog).where(
            SideEffectLog.id == log_id, SideEffectLog.user_id == user_id
        )
    )
    if entry is None:
        raise NotFoundError("Side effect log not found")
    with transaction(session):
        session.delete(entry)
