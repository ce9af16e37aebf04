"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase, TenantBase
from .campaign import Campaign, CompanyProfile
from .education import School, ParticipantToken, SafeguardingFlagRecord, SafeguardingAlert
from .agent_session import AgentSession, AgentMessage
from .assessment import StakeholderProfile, CampaignAssignment
from .coaching import TenantProfile, ParticipantSession
from .usage import UsageEvent

__all__ = [
    "RecordBase", "TenantBase",
    "Campaign", "CompanyProfile",
    "School", "ParticipantToken", "SafeguardingFlagRecord", "SafeguardingAlert",
    "AgentSession", "AgentMessage",
    "StakeholderProfile", "CampaignAssignment",
    "TenantProfile", "ParticipantSession",
    "UsageEvent",
]
