"""
Consulting/assessment vertical: stakeholders assigned to campaigns.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import RecordBase
from .campaign import Campaign


class StakeholderProfile(RecordBase):
    __tablename__ = "stakeholder_profiles"

    company_profile_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("company_profiles.id"), nullable=True, index=True
    )
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=True)
    role_type: Mapped[str] = mapped_column(String, nullable=True)
    title: Mapped[str] = mapped_column(String, nullable=True)
    department: Mapped[str] = mapped_column(String, nullable=True)


class CampaignAssignment(RecordBase):
    """A stakeholder's interview slot in a campaign, reached by access token."""

    __tablename__ = "campaign_assignments"

    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    stakeholder_profile_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("stakeholder_profiles.id"), nullable=True
    )
    access_token: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    stakeholder_name: Mapped[str] = mapped_column(String, nullable=True)
    stakeholder_email: Mapped[str] = mapped_column(String, nullable=True)
    stakeholder_title: Mapped[str] = mapped_column(String, nullable=True)
    stakeholder_role: Mapped[str] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="invited")  # invited, in_progress, completed
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    campaign: Mapped["Campaign"] = relationship(lazy="joined")
    stakeholder_profile: Mapped[Optional["StakeholderProfile"]] = relationship(lazy="joined")
