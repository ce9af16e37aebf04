"""
Usage events for billing and analytics.
"""

from typing import Optional

from sqlalchemy import String, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import TenantBase


class UsageEvent(TenantBase):
    __tablename__ = "usage_events"

    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    # llm_request, session_started, session_completed
    event_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    model_used: Mapped[Optional[str]] = mapped_column(String, nullable=True)
