"""
Completion notifications. Thin wrapper around core.redis.

One helper per audience. Every helper is fire-and-forget: a failed publish is
logged and reported as False, never raised into the turn.
"""

import logging
from typing import Optional

from ..core import redis as _redis
from ..core.config import get_settings

logger = logging.getLogger(__name__)


def dashboard_url(path: str) -> str:
    return f"{get_settings().app_url.rstrip('/')}{path}"


async def _send(kind: str, coro) -> bool:
    try:
        return await coro
    except Exception as e:
        logger.warning("%s notification failed: %s", kind, e)
        return False


# ── Education ────────────────────────────────────────────────────────

async def notify_education_admin(
    campaign_id: Optional[str],
    school_id: Optional[str],
    participant_type: str,
    module: str,
) -> bool:
    """A participant finished a module. Reaches the school's campaign admins."""
    return await _send("Education admin", _redis.notify_campaign(
        campaign_id, "education.session_completed", {
            "school_id": school_id,
            "participant_type": participant_type,
            "module": module,
            "assessment_type": f"Education Assessment ({module.replace('_', ' ')})",
            "dashboard_url": dashboard_url("/dashboard/education"),
        },
    ))


async def notify_safeguarding_alert(campaign_id: Optional[str], alert_id: str, trigger_type: str) -> bool:
    return await _send("Safeguarding", _redis.notify_campaign(
        campaign_id, "education.safeguarding_alert", {
            "alert_id": alert_id,
            "trigger_type": trigger_type,
            "dashboard_url": dashboard_url("/dashboard/education/safeguarding"),
        },
    ))


# ── Assessment ───────────────────────────────────────────────────────

async def notify_campaign_owner(campaign_id: str, assignment_id: str, stakeholder_name: str) -> bool:
    """A stakeholder finished their assessment interview."""
    return await _send("Campaign owner", _redis.notify_campaign(
        campaign_id, "assessment.session_completed", {
            "assignment_id": assignment_id,
            "stakeholder_name": stakeholder_name,
            "assessment_type": "Industry Assessment",
            "dashboard_url": dashboard_url(f"/dashboard/campaigns/{campaign_id}"),
        },
    ))


# ── Coaching ─────────────────────────────────────────────────────────

async def notify_tenant_owner(tenant_id: str, session_id: str, results: dict) -> bool:
    """A coaching client finished their archetype interview."""
    return await _send("Tenant owner", _redis.notify_tenant(
        tenant_id, "coaching.session_completed", {
            "session_id": session_id,
            "assessment_type": "Leadership Archetype",
            "dashboard_url": dashboard_url("/dashboard/clients"),
            **results,
        },
    ))
