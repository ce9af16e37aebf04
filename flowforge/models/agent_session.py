"""
Agent session persistence.

One row per ongoing conversation. Education sessions are pre-provisioned per
(participant token, module) and keep their turns in agent_messages; assessment
and coaching sessions are created on first turn and keep their turns inline in
conversation_history.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Integer, JSON, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase

EDUCATION_INTERVIEW = "education_interview"
ASSESSMENT_INTERVIEW = "assessment_interview"
ARCHETYPE_INTERVIEW = "archetype_interview"


class AgentSession(RecordBase):
    __tablename__ = "agent_sessions"
    __table_args__ = (
        # At most one session per external session and agent type
        UniqueConstraint("stakeholder_session_id", "agent_type", name="uq_agent_sessions_stakeholder_agent"),
    )

    agent_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    agent_model: Mapped[str] = mapped_column(String, nullable=True)
    participant_token_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("education_participant_tokens.id"), nullable=True, index=True
    )
    # campaign_assignments.id or participant_sessions.id
    stakeholder_session_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    # [{role, content, timestamp}, ...] in conversation order
    conversation_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    session_context: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    # Education only: {"module": "student_wellbeing", "progress": {...}}
    education_session_context: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    last_message_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class AgentMessage(RecordBase):
    """Append-only education turns. sequence_number is the conversation order."""

    __tablename__ = "agent_messages"

    agent_session_id: Mapped[str] = mapped_column(
        String, ForeignKey("agent_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String, nullable=False)  # user, assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
