"""
Vertical router.

The vertical key comes from the system prompt. Known keys go to their
handler; anything else (unknown, or a vertical switched off by flag) goes
to education.
"""

import logging

from .base_handler import VerticalHandler
from .context import DEFAULT_VERTICAL, SessionContext
from .registry import HandlerRegistry

logger = logging.getLogger(__name__)


def route(ctx: SessionContext, registry: HandlerRegistry) -> VerticalHandler:
    """Pick the handler for this turn."""
    handler = registry.get(ctx.vertical_key)
    if handler:
        logger.info("Router: vertical '%s'", ctx.vertical_key)
        return handler

    logger.warning("Router: unknown vertical '%s' → %s", ctx.vertical_key, DEFAULT_VERTICAL)
    return registry.get(DEFAULT_VERTICAL)
