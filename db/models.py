"""SQLAlchemy 2.0 ORM models for the auto-answer pipeline.

Covers 5 tables:
  - questions:          marketplace questions and their answer lifecycle
  - settings_config:    the single auto-answer schedule row
  - job_logs:           one row per scheduled auto-answer run
  - rate_limit_config:  advisory per-endpoint request budgets
  - api_stats:          one row per outbound API attempt
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Values used in CHECK constraints
# ---------------------------------------------------------------------------

ANSWER_TYPES = ("PROVIDER", "AUTOMATIC", "MANUAL", "")
JOB_STATES = ("running", "completed", "failed")

_ANSWER_TYPE_CHECK = (
    "answer_type IS NULL OR answer_type IN ("
    + ", ".join(f"'{t}'" for t in ANSWER_TYPES)
    + ")"
)
_JOB_STATE_CHECK = (
    "state IS NULL OR state IN (" + ", ".join(f"'{s}'" for s in JOB_STATES) + ")"
)


# ===========================================================================
# Questions
# ===========================================================================


class Question(Base):
    """questions — one marketplace question and its answer lifecycle."""

    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint(_ANSWER_TYPE_CHECK, name="ck_question_answer_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    customer_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    product_main_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_web_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_public: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    chatbase_conversation_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_chatbase_unknown_answer: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    answer_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answer_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answer_text_edited: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answer_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answer_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status: Mapped[str] = mapped_column(Text, nullable=False)
    is_follow_up: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    needs_approval: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    approved: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    processed_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def has_draft(self) -> bool:
        """A Chatbase session produced answer text for this question."""
        return bool(self.chatbase_conversation_id and self.answer_text)

    def __repr__(self) -> str:
        return (
            f"<Question {self.question_id} status={self.status} "
            f"follow_up={self.is_follow_up} needs_approval={self.needs_approval}>"
        )


# ===========================================================================
# Scheduling
# ===========================================================================


class SettingsConfig(Base):
    """settings_config — the single auto-answer schedule configuration."""

    __tablename__ = "settings_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    automatic_answer: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    start_time: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    end_time: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    weekdays: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # comma-separated
    time_zone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def weekday_list(self) -> list[str]:
        if not self.weekdays:
            return []
        return [day.strip() for day in self.weekdays.split(",") if day.strip()]


class JobLog(Base):
    """job_logs — audit record of one scheduled auto-answer run."""

    __tablename__ = "job_logs"
    __table_args__ = (CheckConstraint(_JOB_STATE_CHECK, name="ck_job_log_state"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    running_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# ===========================================================================
# Outbound API bookkeeping
# ===========================================================================


class RateLimitConfig(Base):
    """rate_limit_config — advisory request budget per external endpoint."""

    __tablename__ = "rate_limit_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    endpoint: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    requests_per_minute: Mapped[int] = mapped_column(Integer, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ApiStat(Base):
    """api_stats — latency and outcome of one outbound API attempt."""

    __tablename__ = "api_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    response_time: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    rate_limit_remaining: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rate_limit_reset: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
