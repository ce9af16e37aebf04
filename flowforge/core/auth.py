"""
Shared-secret check for the voice platform OR debug bypass.
Controlled by FF_REQUIRE_VOICE_AUTH flag.
"""

import hmac
import logging

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)


def verify_voice_caller(authorization: str = "") -> None:
    """
    Validate the Authorization header sent by the voice platform.

    Raises PermissionError when the flag is on and the header does not
    carry "Bearer <VOICE_LLM_SECRET>".
    """
    flags = get_flags()
    if not flags.require_voice_auth:
        logger.debug("Voice auth check skipped (FF_REQUIRE_VOICE_AUTH=false)")
        return

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise PermissionError("Missing or invalid Authorization header")

    expected = get_settings().voice_llm_secret
    if not expected:
        raise PermissionError("VOICE_LLM_SECRET is not configured")

    if not hmac.compare_digest(token.encode(), expected.encode()):
        raise PermissionError("Invalid voice LLM secret")
