"""
Campaigns. Shared by the education and assessment verticals.
"""

from typing import Optional

from sqlalchemy import String, Text, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import RecordBase


class CompanyProfile(RecordBase):
    __tablename__ = "company_profiles"

    company_name: Mapped[str] = mapped_column(String, nullable=False)
    industry: Mapped[str] = mapped_column(String, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    market_scope: Mapped[str] = mapped_column(String, nullable=True)  # local, regional, national, international
    employee_count_range: Mapped[str] = mapped_column(String, nullable=True)
    headquarters_location: Mapped[str] = mapped_column(String, nullable=True)


class Campaign(RecordBase):
    __tablename__ = "campaigns"

    name: Mapped[str] = mapped_column(String, nullable=False)
    company_name: Mapped[str] = mapped_column(String, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    facilitator_name: Mapped[str] = mapped_column(String, nullable=True)
    facilitator_email: Mapped[str] = mapped_column(String, nullable=True)
    created_by: Mapped[str] = mapped_column(String, nullable=True)
    # Education only: {"modules": [...], "pilot_type": "standard"}
    education_config: Mapped[dict] = mapped_column(JSON, nullable=True)
    company_profile_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("company_profiles.id"), nullable=True
    )

    company_profile: Mapped[Optional["CompanyProfile"]] = relationship(lazy="joined")
