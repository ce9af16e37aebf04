"""
Assessment vertical: consulting interviews with campaign stakeholders.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import interviewer
from ...core.config import get_settings
from ...core.errors import InvalidToken
from ...models.agent_session import ASSESSMENT_INTERVIEW, AgentSession
from ...models.assessment import CampaignAssignment
from ...orchestrator.base_handler import AgentReply, Turn, VerticalHandler
from ...orchestrator.context import SessionContext
from ...services import notifications
from ...services.agent_session import (
    find_or_create_agent_session,
    make_turn,
    normalize_history,
    save_conversation,
)

logger = logging.getLogger(__name__)


@dataclass
class AssessmentTurn(Turn):
    assignment: Optional[CampaignAssignment] = None
    session: Optional[AgentSession] = None
    history: list = field(default_factory=list)
    state: dict = field(default_factory=dict)
    stakeholder: dict = field(default_factory=dict)


def _stakeholder(assignment: CampaignAssignment) -> dict:
    """Flatten assignment + campaign + profiles into what the interviewer needs."""
    campaign = assignment.campaign
    profile = assignment.stakeholder_profile
    company = campaign.company_profile if campaign else None
    return {
        "id": assignment.id,
        "name": assignment.stakeholder_name or (profile.full_name if profile else "there"),
        "email": assignment.stakeholder_email or (profile.email if profile else None),
        "title": assignment.stakeholder_title or (profile.title if profile else None),
        "role": assignment.stakeholder_role or (profile.role_type if profile else None),
        "campaign_name": campaign.name if campaign else None,
        "company_name": (
            (company.company_name if company else None)
            or (campaign.company_name if campaign else None)
            or "their company"
        ),
        "facilitator_name": campaign.facilitator_name if campaign else None,
    }


class AssessmentHandler(VerticalHandler):
    key = "assessment"
    display_name = "Assessment Interview"
    agent_type = ASSESSMENT_INTERVIEW

    async def load_context(
        self,
        db: AsyncSession,
        ctx: SessionContext,
        user_message: Optional[str],
    ) -> AssessmentTurn:
        result = await db.execute(
            select(CampaignAssignment).where(CampaignAssignment.access_token == ctx.session_token)
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            raise InvalidToken(ctx.token_prefix)

        session = await find_or_create_agent_session(
            db,
            stakeholder_session_id=assignment.id,
            agent_type=ASSESSMENT_INTERVIEW,
            agent_model=get_settings().default_llm_model,
            session_context=interviewer.initial_state(),
        )

        return AssessmentTurn(
            ctx=ctx,
            assignment=assignment,
            session=session,
            history=normalize_history(session.conversation_history),
            state=session.session_context or interviewer.initial_state(),
            stakeholder=_stakeholder(assignment),
        )

    async def invoke_agent(self, turn: AssessmentTurn, user_message: Optional[str]) -> AgentReply:
        if user_message is None:
            reply = await interviewer.generate_greeting(turn.stakeholder)
            if turn.history:
                reply.state = turn.state
            return reply
        return await interviewer.process_message(user_message, turn.stakeholder, turn.history, turn.state)

    async def persist_turn(
        self,
        db: AsyncSession,
        turn: AssessmentTurn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        history = list(turn.history)
        if user_message is not None:
            history.append(make_turn("user", user_message))
        history.append(make_turn("assistant", reply.content))
        await save_conversation(db, turn.session, history, reply.state)

    async def after_turn(
        self,
        db: AsyncSession,
        turn: AssessmentTurn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        if not reply.is_complete or turn.assignment.status == "completed":
            return

        completed = await self.guarded(db, "assignment completion", lambda: self._mark_completed(db, turn))
        if completed:
            await notifications.notify_campaign_owner(
                turn.assignment.campaign_id,
                turn.assignment.id,
                turn.stakeholder["name"],
            )

    async def _mark_completed(self, db: AsyncSession, turn: AssessmentTurn) -> None:
        assignment = turn.assignment
        assignment.status = "completed"
        assignment.completed_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("Assessment completed for assignment %s", assignment.id)
