"""
VerticalHandler: every interview vertical implements this interface.

One turn, one lifecycle, whatever the vertical:

    load_context   lookups; raises SessionError; may short-circuit with a fixed reply
    invoke_agent   the interviewer call
    persist_turn   append turns, store state
    after_turn     side effects (alerts, completion, usage, notifications)

handle() drives the steps in that order. Side effects go through guarded(),
so a failed write is logged and the reply still reaches the participant.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .context import SessionContext

logger = logging.getLogger(__name__)


@dataclass
class Turn:
    """What load_context resolved. Verticals subclass it with their own rows."""

    ctx: SessionContext
    reply: Optional[str] = None  # Set → answer with this, skip the agent


@dataclass
class AgentReply:
    """What an interviewer returns for one turn."""

    content: str = ""
    state: Optional[dict] = None                # Updated vertical progress/state
    is_complete: bool = False                   # Interview finished on this turn
    usage: Optional[dict] = None                # {input_tokens, output_tokens, model}
    safeguarding_alert: Optional[dict] = None   # Interviewer's own safeguarding assessment
    metadata: dict = field(default_factory=dict)


class VerticalHandler:
    """
    Base class for the three verticals. Subclass and implement the steps.

    Attributes:
        key:          Vertical key from the system prompt ("education")
        display_name: Human-readable name for logs
        agent_type:   agent_sessions.agent_type this vertical owns
    """

    key: str = ""
    display_name: str = ""
    agent_type: str = ""

    async def handle(
        self,
        db: AsyncSession,
        ctx: SessionContext,
        user_message: Optional[str],
    ) -> str:
        """Run one turn and return the reply text."""
        turn = await self.load_context(db, ctx, user_message)
        if turn.reply is not None:
            logger.info("%s: short-circuit for %s...", self.key, ctx.token_prefix)
            return turn.reply

        reply = await self.invoke_agent(turn, user_message)
        await self.persist_turn(db, turn, user_message, reply)
        await self.after_turn(db, turn, user_message, reply)
        return reply.content

    async def load_context(
        self,
        db: AsyncSession,
        ctx: SessionContext,
        user_message: Optional[str],
    ) -> Turn:
        raise NotImplementedError(f"Handler '{self.key}' must implement load_context()")

    async def invoke_agent(self, turn: Turn, user_message: Optional[str]) -> AgentReply:
        raise NotImplementedError(f"Handler '{self.key}' must implement invoke_agent()")

    async def persist_turn(
        self,
        db: AsyncSession,
        turn: Turn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        raise NotImplementedError(f"Handler '{self.key}' must implement persist_turn()")

    async def after_turn(
        self,
        db: AsyncSession,
        turn: Turn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        """Optional side effects. Default: none."""

    async def guarded(
        self,
        db: AsyncSession,
        label: str,
        step: Callable[[], Awaitable[Any]],
    ) -> bool:
        """
        Run a side-effect step inside a SAVEPOINT. Failures are logged and
        rolled back to the savepoint; the turn carries on.
        """
        try:
            async with db.begin_nested():
                await step()
            return True
        except Exception as e:
            logger.exception("%s: %s failed: %s", self.key, label, e)
            return False

    def describe(self) -> dict:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "agent_type": self.agent_type,
        }
