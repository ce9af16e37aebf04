"""
Vertical registry. Register handlers, look them up, list them.
"""

import logging
from typing import Optional

from .base_handler import VerticalHandler
from ..core.flags import get_flags

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Central registry for all vertical handlers."""

    def __init__(self):
        self._handlers: dict[str, VerticalHandler] = {}

    def register(self, handler: VerticalHandler) -> None:
        """Register a handler by its vertical key."""
        if handler.key in self._handlers:
            logger.warning("Vertical '%s' already registered, overwriting", handler.key)
        self._handlers[handler.key] = handler
        logger.info("Registered vertical: %s (%s)", handler.key, handler.display_name)

    def get(self, key: str) -> Optional[VerticalHandler]:
        """Get a handler by vertical key. Returns None if not found."""
        return self._handlers.get(key)

    def keys(self) -> list[str]:
        return list(self._handlers.keys())

    def describe(self) -> list[dict]:
        return [h.describe() for h in self._handlers.values()]


# ── Global registry ──────────────────────────────────────────────────

_registry: Optional[HandlerRegistry] = None


def get_registry() -> HandlerRegistry:
    """Get or create the global handler registry."""
    global _registry
    if _registry is None:
        _registry = HandlerRegistry()
        _register_enabled_verticals(_registry)
    return _registry


def reset_registry() -> None:
    """Drop the global registry so the next get_registry() re-reads the flags."""
    global _registry
    _registry = None


def _register_enabled_verticals(registry: HandlerRegistry) -> None:
    """Register verticals based on feature flags."""
    flags = get_flags()

    # Education is the default route and is always registered
    from ..agents.education.handler import EducationHandler
    registry.register(EducationHandler())

    if flags.enable_assessment:
        from ..agents.assessment.handler import AssessmentHandler
        registry.register(AssessmentHandler())

    if flags.enable_coaching:
        from ..agents.coaching.handler import CoachingHandler
        registry.register(CoachingHandler())

    logger.info(
        "Handler registry ready: %d verticals [%s]",
        len(registry.keys()),
        ", ".join(registry.keys()),
    )
