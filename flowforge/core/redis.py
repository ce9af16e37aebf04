"""
Redis pub/sub for completion and safeguarding events OR silent no-op.
Controlled by FF_USE_REDIS flag.

Channels:
    campaign:<campaign_id>   facilitators and school admins
    tenant:<tenant_id>       coaching tenant owners

Message: {"type": "<event>", "sent_at": "<iso8601>", "data": {...}}
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

_redis_client = None


def _enabled() -> bool:
    return get_flags().use_redis and bool(get_settings().redis_url)


async def _get_redis():
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _redis_client


def encode_event(event_type: str, data: Optional[dict] = None) -> str:
    return json.dumps(
        {
            "type": event_type,
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "data": data or {},
        },
        default=str,
    )


async def publish(channel: str, event_type: str, data: Optional[dict] = None) -> bool:
    """
    Hand one event to Redis. Returns False when Redis is off or the publish
    failed; never raises.
    """
    if not _enabled():
        logger.debug("Redis off, dropping %s for %s", event_type, channel)
        return False

    try:
        client = await _get_redis()
        receivers = await client.publish(channel, encode_event(event_type, data))
    except Exception as e:
        logger.warning("Redis publish %s on %s failed: %s", event_type, channel, e)
        return False

    logger.info("Published %s on %s (%d subscribers)", event_type, channel, receivers)
    return True


async def notify_campaign(campaign_id: Optional[str], event_type: str, data: Optional[dict] = None) -> bool:
    if not campaign_id:
        logger.warning("No campaign id for %s, not published", event_type)
        return False
    return await publish(f"campaign:{campaign_id}", event_type, data)


async def notify_tenant(tenant_id: str, event_type: str, data: Optional[dict] = None) -> bool:
    return await publish(f"tenant:{tenant_id}", event_type, data)


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
