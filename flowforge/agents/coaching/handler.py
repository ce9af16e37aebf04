"""
Coaching vertical: archetype interviews for a coach tenant's clients.

Adds usage-limit gating and archetype results on completion.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from . import interviewer
from ...core.config import get_settings
from ...core.errors import InvalidToken, TenantInactive, TenantNotFound
from ...models.agent_session import ARCHETYPE_INTERVIEW, AgentSession
from ...models.coaching import ParticipantSession, TenantProfile
from ...orchestrator.base_handler import AgentReply, Turn, VerticalHandler
from ...orchestrator.context import SessionContext
from ...services import notifications
from ...services.agent_session import (
    find_or_create_agent_session,
    make_turn,
    normalize_history,
    save_conversation,
)
from ...services.usage import (
    LLM_REQUEST,
    SESSION_COMPLETED,
    SESSION_STARTED,
    check_usage_limit,
    log_usage_event,
)

logger = logging.getLogger(__name__)

ALREADY_COMPLETED = "This session has already been completed. Thank you for your time!"
USAGE_EXCEEDED = (
    "I'm sorry, but this session can't continue right now because your coach's usage limit "
    "has been reached. Please contact your coach to pick up where you left off."
)


@dataclass
class CoachingTurn(Turn):
    participant: Optional[ParticipantSession] = None
    tenant: Optional[TenantProfile] = None
    session: Optional[AgentSession] = None
    history: list = field(default_factory=list)
    state: Optional[dict] = None


class CoachingHandler(VerticalHandler):
    key = "coaching"
    display_name = "Archetype Interview"
    agent_type = ARCHETYPE_INTERVIEW

    async def load_context(
        self,
        db: AsyncSession,
        ctx: SessionContext,
        user_message: Optional[str],
    ) -> CoachingTurn:
        result = await db.execute(
            select(ParticipantSession).where(ParticipantSession.access_token == ctx.session_token)
        )
        participant = result.scalar_one_or_none()
        if participant is None:
            raise InvalidToken(ctx.token_prefix)

        if participant.client_status == "completed":
            return CoachingTurn(ctx=ctx, reply=ALREADY_COMPLETED)

        tenant = await db.get(TenantProfile, participant.tenant_id)
        if tenant is None:
            raise TenantNotFound(participant.tenant_id)
        if not tenant.is_active:
            raise TenantInactive(tenant.slug)

        usage = await check_usage_limit(db, tenant.id)
        if not usage.allowed:
            logger.warning("Coaching turn blocked for tenant %s: %s", tenant.id, usage.reason)
            return CoachingTurn(ctx=ctx, reply=USAGE_EXCEEDED)

        session = await find_or_create_agent_session(
            db,
            stakeholder_session_id=participant.id,
            agent_type=ARCHETYPE_INTERVIEW,
            agent_model=get_settings().default_llm_model,
        )

        return CoachingTurn(
            ctx=ctx,
            participant=participant,
            tenant=tenant,
            session=session,
            history=normalize_history(session.conversation_history),
            state=session.session_context,
        )

    async def invoke_agent(self, turn: CoachingTurn, user_message: Optional[str]) -> AgentReply:
        tenant = {
            "display_name": turn.tenant.display_name,
            "brand_config": turn.tenant.brand_config or {},
        }
        name = turn.participant.stakeholder_name or turn.ctx.stakeholder_name or "there"
        return await interviewer.process_message(user_message, turn.state, turn.history, tenant, name)

    async def persist_turn(
        self,
        db: AsyncSession,
        turn: CoachingTurn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        history = list(turn.history)
        if user_message:
            history.append(make_turn("user", user_message))
        history.append(make_turn("assistant", reply.content))
        await save_conversation(db, turn.session, history, reply.state)

    async def after_turn(
        self,
        db: AsyncSession,
        turn: CoachingTurn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        participant = turn.participant
        tenant_id = participant.tenant_id
        now = datetime.now(timezone.utc)
        updates: dict = {"last_activity_at": now}

        if participant.started_at is None:
            updates.update(started_at=now, client_status="started", status="in_progress")
            await log_usage_event(db, tenant_id, SESSION_STARTED, {"session_id": participant.id})

        if reply.usage:
            await log_usage_event(
                db, tenant_id, LLM_REQUEST,
                {
                    "session_id": participant.id,
                    "agent": ARCHETYPE_INTERVIEW,
                    "turn": "opening" if user_message is None else "message",
                },
                input_tokens=reply.usage.get("input_tokens", 0),
                output_tokens=reply.usage.get("output_tokens", 0),
                model_used=reply.usage.get("model"),
            )

        results = None
        if reply.is_complete:
            state = reply.state or {}
            results = {
                "default_archetype": state.get("default_archetype"),
                "authentic_archetype": state.get("authentic_archetype"),
                "is_aligned": state.get("is_aligned"),
                "scores": state.get("scores"),
                "completed_at": now.isoformat(),
            }
            updates.update(
                completed_at=now,
                client_status="completed",
                status="completed",
                metadata_={**(participant.metadata_ or {}), "archetype_results": results},
            )
            await log_usage_event(db, tenant_id, SESSION_COMPLETED, {"session_id": participant.id, **results})

        await self.guarded(db, "session update", lambda: self._apply(db, participant, updates))

        if results is not None:
            await notifications.notify_tenant_owner(tenant_id, participant.id, results)

    async def _apply(self, db: AsyncSession, participant: ParticipantSession, updates: dict) -> None:
        for name, value in updates.items():
            setattr(participant, name, value)
        if "metadata_" in updates:
            flag_modified(participant, "metadata_")
        await db.flush()
