"""
Voice turn pipeline.

Parse context → (test mode? canned echo) → route → handler.handle() in its own
unit of work → reply text.

start_voice_turn() schedules the turn as an asyncio.Task so the SSE writer can
flush the role chunk while the interviewer is still working.
"""

import asyncio
import logging
import time
from typing import Optional

from .context import SessionContext
from .registry import get_registry
from .router import route
from ..core.database import session_scope
from ..core.errors import SessionContextMissing, SessionError

logger = logging.getLogger(__name__)


def canned_reply(ctx: SessionContext, user_message: Optional[str]) -> str:
    """Canned answer for test tokens. Never touches the database."""
    if user_message is None:
        return f"Test mode is active for session {ctx.session_token}. The connection is working."
    return f"Test mode received your message: {user_message}"


async def handle_voice_turn(ctx: SessionContext, user_message: Optional[str]) -> str:
    """
    Produce the assistant reply for one voice turn.
    SessionError and agent failures propagate to the caller.
    """
    if ctx.is_test_mode:
        logger.info("Test mode turn for %s...", ctx.token_prefix)
        return canned_reply(ctx, user_message)

    if not ctx.session_token:
        raise SessionContextMissing()

    start = time.monotonic()
    handler = route(ctx, get_registry())

    async with session_scope() as db:
        reply = await handler.handle(db, ctx, user_message)

    logger.info(
        "Voice turn: %s | %s... | first_turn=%s | %d chars | %dms",
        handler.key, ctx.token_prefix, user_message is None,
        len(reply), int((time.monotonic() - start) * 1000),
    )
    return reply


# Turns in flight. The event loop only keeps weak references to tasks.
_running_turns: set[asyncio.Task] = set()


def _turn_finished(task: asyncio.Task) -> None:
    _running_turns.discard(task)
    if task.cancelled():
        logger.warning("Voice turn %s was cancelled", task.get_name())
        return
    error = task.exception()
    if error is not None and not isinstance(error, SessionError):
        logger.error("Voice turn %s failed: %s", task.get_name(), error)


def start_voice_turn(ctx: SessionContext, user_message: Optional[str]) -> asyncio.Task:
    """
    Schedule handle_voice_turn() as a producer task.

    The task runs to completion even if the caller hangs up and nobody
    awaits it, so the turn is still persisted.
    """
    task = asyncio.create_task(
        handle_voice_turn(ctx, user_message),
        name=f"voice-turn-{ctx.token_prefix}",
    )
    _running_turns.add(task)
    task.add_done_callback(_turn_finished)
    return task
