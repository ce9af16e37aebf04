"""
Usage tracking for coaching tenants: event logging and monthly token limits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.flags import get_flags
from ..models.coaching import TenantProfile
from ..models.usage import UsageEvent

logger = logging.getLogger(__name__)

SESSION_STARTED = "session_started"
SESSION_COMPLETED = "session_completed"
LLM_REQUEST = "llm_request"

LIMIT_REACHED = "Usage limit reached. Please upgrade your plan or wait for your next billing cycle."


async def log_usage_event(
    db: AsyncSession,
    tenant_id: str,
    event_type: str,
    event_data: Optional[dict] = None,
    input_tokens: int = 0,
    output_tokens: int = 0,
    model_used: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Optional[str]:
    """
    Record a usage event. Returns the event id, or None if it could not be written.
    Runs in a SAVEPOINT so a failed insert leaves the turn's transaction intact.
    """
    event = UsageEvent(
        tenant_id=tenant_id,
        user_id=user_id,
        event_type=event_type,
        event_data=event_data or {},
        tokens_used=input_tokens + output_tokens,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        model_used=model_used,
    )
    try:
        async with db.begin_nested():
            db.add(event)
            await db.flush()
    except Exception as e:
        logger.warning("Failed to log %s usage for tenant %s: %s", event_type, tenant_id, e)
        return None
    return event.id


@dataclass
class UsageCheckResult:
    allowed: bool
    current_usage: int = 0
    limit: int = 0
    reason: Optional[str] = None


def _billing_period_start(tenant: TenantProfile) -> datetime:
    if tenant.billing_period_start:
        return tenant.billing_period_start
    now = datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def check_usage_limit(db: AsyncSession, tenant_id: str) -> UsageCheckResult:
    """
    Can this tenant start another LLM turn?

    A limit of 0 or None is unlimited. Missing tenant data fails open.
    """
    if not get_flags().enforce_usage_limits:
        return UsageCheckResult(allowed=True)

    tenant = await db.get(TenantProfile, tenant_id)
    if tenant is None:
        logger.warning("Could not get usage for tenant %s, allowing request", tenant_id)
        return UsageCheckResult(allowed=True)

    if tenant.usage_limit_override is not None:
        limit = tenant.usage_limit_override
    else:
        limit = tenant.monthly_token_limit or 0
    if limit <= 0:
        return UsageCheckResult(allowed=True)

    result = await db.execute(
        select(func.coalesce(func.sum(UsageEvent.tokens_used), 0))
        .where(
            UsageEvent.tenant_id == tenant_id,
            UsageEvent.created_at >= _billing_period_start(tenant),
        )
    )
    current = int(result.scalar_one())

    if current >= limit:
        logger.info("Tenant %s over usage limit (%d/%d)", tenant_id, current, limit)
        return UsageCheckResult(allowed=False, current_usage=current, limit=limit, reason=LIMIT_REACHED)
    return UsageCheckResult(allowed=True, current_usage=current, limit=limit)
