"""
Coaching vertical: coach tenants and their clients' archetype sessions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, JSON, Boolean, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase, TenantBase


class TenantProfile(RecordBase):
    """A coach's white-labelled workspace. Its id is the tenant_id elsewhere."""

    __tablename__ = "tenant_profiles"

    user_id: Mapped[str] = mapped_column(String, nullable=True)
    slug: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # {"welcomeMessage": ..., "completionMessage": ..., "colors": {...}}
    brand_config: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    # Tokens per billing period; None or 0 means unlimited
    monthly_token_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_limit_override: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    billing_period_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ParticipantSession(TenantBase):
    """One coaching client's archetype interview, reached by access token."""

    __tablename__ = "participant_sessions"

    access_token: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    stakeholder_name: Mapped[str] = mapped_column(String, nullable=True)
    stakeholder_email: Mapped[str] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="invited")  # invited, in_progress, completed
    client_status: Mapped[str] = mapped_column(String, nullable=True)  # started, completed
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=True, default=dict)
    # Stores: archetype_results
