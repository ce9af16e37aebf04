"""
Education vertical: schools, anonymous participant tokens, safeguarding records.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, JSON, Boolean, Float, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import RecordBase
from .campaign import Campaign


class School(RecordBase):
    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String, nullable=False)
    country: Mapped[str] = mapped_column(String, nullable=True)
    curriculum: Mapped[str] = mapped_column(String, nullable=True)


class ParticipantToken(RecordBase):
    """An anonymous interview credential handed to one student/teacher/parent/leader."""

    __tablename__ = "education_participant_tokens"

    token: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    participant_type: Mapped[str] = mapped_column(String, nullable=True)  # student, teacher, parent, leadership
    # {"year_band": "9", "division": "secondary", "role_category": ...}
    cohort_metadata: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    school_id: Mapped[Optional[str]] = mapped_column(String, ForeignKey("schools.id"), nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(String, ForeignKey("campaigns.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    completed_modules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    school: Mapped[Optional["School"]] = relationship(lazy="joined")
    campaign: Mapped[Optional["Campaign"]] = relationship(lazy="joined")


class SafeguardingFlagRecord(RecordBase):
    """Every flag raised during an education session, regardless of confidence."""

    __tablename__ = "safeguarding_flags"

    agent_session_id: Mapped[str] = mapped_column(
        String, ForeignKey("agent_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    trigger_type: Mapped[str] = mapped_column(String, nullable=False)
    flag: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class SafeguardingAlert(RecordBase):
    """High-confidence concern escalated to the school's safeguarding lead."""

    __tablename__ = "safeguarding_alerts"

    campaign_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    school_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    participant_token: Mapped[str] = mapped_column(String, nullable=False)
    participant_type: Mapped[str] = mapped_column(String, nullable=True)
    cohort_metadata: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    trigger_type: Mapped[str] = mapped_column(String, nullable=False)
    trigger_content: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_context: Mapped[str] = mapped_column(Text, nullable=True)  # the reply given
    trigger_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    ai_analysis: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")
