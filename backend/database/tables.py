"""
SQLAlchemy ORM models for the Zinara patient database.

Every user-owned table cascades on account deletion.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all tables."""


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class UserRole(str, Enum):
    PATIENT = "PATIENT"
    ADMIN = "ADMIN"


class AccessingFor(str, Enum):
    """Who a medical profile describes."""
    SELF = "SELF"
    LOVED_ONE = "LOVED_ONE"
    OTHER = "OTHER"


class AnalysisStatus(str, Enum):
    PENDING = "PENDING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(16), default=UserRole.PATIENT.value)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    onboarding_done: Mapped[bool] = mapped_column(Boolean, default=False)

    medical_profile: Mapped["MedicalProfile | None"] = relationship(
        back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    onboarding_responses: Mapped[list["OnboardingResponse"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="OnboardingResponse.step_number",
    )
    chat_sessions: Mapped[list["ChatSession"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    reports: Mapped[list["Report"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    side_effect_logs: Mapped[list["SideEffectLog"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class OnboardingQuestion(Base):
    __tablename__ = "onboarding_questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    step_number: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    question_text: Mapped[str] = mapped_column(Text)
    question_type: Mapped[str] = mapped_column(String(32), default="dropdown")
    options: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    depends_on: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    responses: Mapped[list["OnboardingResponse"]] = relationship(back_populates="question")


class OnboardingResponse(TimestampMixin, Base):
    __tablename__ = "onboarding_responses"
    __table_args__ = (
        UniqueConstraint("user_id", "step_number", name="uq_onboarding_response_user_step"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    question_id: Mapped[str] = mapped_column(ForeignKey("onboarding_questions.id"))
    step_number: Mapped[int] = mapped_column(Integer)
    answer: Mapped[str] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    response_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    ip_address: Mapped[str | None] = mapped_column(String(64))

    user: Mapped[User] = relationship(back_populates="onboarding_responses")
    question: Mapped[OnboardingQuestion] = relationship(back_populates="responses")


class MedicalProfile(TimestampMixin, Base):
    __tablename__ = "medical_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True
    )
    cancer_type: Mapped[str | None] = mapped_column(String(128))
    cancer_stage: Mapped[str | None] = mapped_column(String(64))
    accessing_for: Mapped[str] = mapped_column(String(16), default=AccessingFor.SELF.value)
    current_treatment: Mapped[str | None] = mapped_column(String(255))
    diagnosis_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    interests: Mapped[list[str]] = mapped_column(JSON, default=list)

    user: Mapped[User] = relationship(back_populates="medical_profile")


class ChatSession(TimestampMixin, Base):
    __tablename__ = "chat_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String(64))

    user: Mapped[User] = relationship(back_populates="chat_sessions")
    messages: Mapped[list["ChatMessage"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.created_at",
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("chat_sessions.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    session: Mapped[ChatSession] = relationship(back_populates="messages")


class Report(TimestampMixin, Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    file_name: Mapped[str] = mapped_column(String(255))
    file_type: Mapped[str] = mapped_column(String(32), default="text")
    content: Mapped[str] = mapped_column(Text)
    analysis_status: Mapped[str] = mapped_column(
        String(16), default=AnalysisStatus.PENDING.value
    )
    ai_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    user: Mapped[User] = relationship(back_populates="reports")


class SideEffectLog(Base):
    __tablename__ = "side_effect_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    symptom: Mapped[str] = mapped_column(String(200))
    severity: Mapped[int] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship(back_populates="side_effect_logs")
