"""
Education vertical: anonymous student/teacher/parent/leadership interviews.

Sessions are pre-provisioned per (participant token, module); this handler
only consumes them. Turns are append-only rows in agent_messages.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from . import interviewer
from ...core.errors import InvalidToken, NoActiveSession, SessionDataIncomplete, SessionDeactivated
from ...core.safeguarding import ALERT_CONFIDENCE, SafeguardingFlag, detect_concerns
from ...models.agent_session import EDUCATION_INTERVIEW, AgentSession
from ...models.education import ParticipantToken, SafeguardingAlert, SafeguardingFlagRecord
from ...orchestrator.base_handler import AgentReply, Turn, VerticalHandler
from ...orchestrator.context import SessionContext
from ...services import notifications
from ...services.agent_session import append_messages, load_messages

logger = logging.getLogger(__name__)


@dataclass
class EducationTurn(Turn):
    token: Optional[ParticipantToken] = None
    module: str = interviewer.DEFAULT_MODULE
    session: Optional[AgentSession] = None
    history: list = field(default_factory=list)
    progress: dict = field(default_factory=dict)
    flags: list = field(default_factory=list)
    participant: dict = field(default_factory=dict)
    campaign: dict = field(default_factory=dict)


async def _get_token(db: AsyncSession, token: str) -> Optional[ParticipantToken]:
    result = await db.execute(select(ParticipantToken).where(ParticipantToken.token == token))
    return result.scalar_one_or_none()


async def _find_module_session(
    db: AsyncSession,
    participant_token_id: str,
    module: str,
) -> Optional[AgentSession]:
    """Newest session of this participant whose stored context names the module."""
    result = await db.execute(
        select(AgentSession)
        .where(AgentSession.participant_token_id == participant_token_id)
        .order_by(AgentSession.created_at.desc())
    )
    for session in result.scalars().all():
        if (session.education_session_context or {}).get("module") == module:
            return session
    return None


class EducationHandler(VerticalHandler):
    key = "education"
    display_name = "Education Interview"
    agent_type = EDUCATION_INTERVIEW

    async def load_context(
        self,
        db: AsyncSession,
        ctx: SessionContext,
        user_message: Optional[str],
    ) -> EducationTurn:
        token = await _get_token(db, ctx.session_token)

        if user_message is None:
            # Platform connected, participant has not spoken yet. Read-only.
            participant_type = (
                (token.participant_type if token else None)
                or ctx.stakeholder_name
                or interviewer.DEFAULT_PARTICIPANT_TYPE
            )
            school_name = token.school.name if token and token.school else None
            return EducationTurn(ctx=ctx, reply=interviewer.greeting(participant_type, school_name))

        if token is None:
            raise InvalidToken(ctx.token_prefix)
        if not token.is_active:
            raise SessionDeactivated(ctx.token_prefix)

        module = interviewer.resolve_module(ctx.module_id)
        session = await _find_module_session(db, token.id, module)
        if session is None:
            raise NoActiveSession(f"{ctx.token_prefix} module={module}")

        history = await load_messages(db, session.id)
        flags = detect_concerns(user_message)

        if token.school is None or token.campaign is None:
            raise SessionDataIncomplete(ctx.token_prefix)

        participant = {
            "participant_type": interviewer.coerce_participant_type(token.participant_type),
            "cohort_metadata": token.cohort_metadata or {},
            "campaign_id": token.campaign_id,
            "school_id": token.school_id,
        }
        campaign = {
            "id": token.campaign.id,
            "name": token.campaign.name,
            "school": {"id": token.school.id, "name": token.school.name},
            "education_config": token.campaign.education_config or dict(interviewer.DEFAULT_EDUCATION_CONFIG),
        }
        progress = (session.education_session_context or {}).get("progress") or interviewer.initial_progress()

        return EducationTurn(
            ctx=ctx,
            token=token,
            module=module,
            session=session,
            history=history,
            progress=progress,
            flags=flags,
            participant=participant,
            campaign=campaign,
        )

    async def invoke_agent(self, turn: EducationTurn, user_message: Optional[str]) -> AgentReply:
        reply = await interviewer.process_message(
            user_message,
            turn.participant,
            turn.campaign,
            turn.module,
            turn.history,
            turn.progress,
            turn.flags,
        )

        if reply.is_complete:
            try:
                reply.content = await interviewer.generate_closing(turn.participant, turn.campaign, reply.state)
            except Exception as e:
                logger.error("Closing message generation failed, using fallback: %s", e)
                reply.content = interviewer.CLOSING_FALLBACK
            if not reply.content:
                reply.content = interviewer.CLOSING_FALLBACK

        return reply

    async def persist_turn(
        self,
        db: AsyncSession,
        turn: EducationTurn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        await append_messages(db, turn.session.id, [
            ("user", user_message),
            ("assistant", reply.content),
        ])

    async def after_turn(
        self,
        db: AsyncSession,
        turn: EducationTurn,
        user_message: Optional[str],
        reply: AgentReply,
    ) -> None:
        await self.guarded(db, "progress update", lambda: self._update_progress(db, turn, reply))

        flags = list(turn.flags)
        if not flags and reply.safeguarding_alert:
            flags.append(SafeguardingFlag(
                type=reply.safeguarding_alert.get("type", "agent_reported"),
                content=user_message[:200],
                confidence=reply.safeguarding_alert.get("confidence", ALERT_CONFIDENCE),
            ))
        for flag in flags:
            await self.guarded(
                db, f"safeguarding {flag.type}",
                lambda flag=flag: self._record_flag(db, turn, user_message, reply, flag),
            )

        if reply.is_complete:
            completed = await self.guarded(db, "module completion", lambda: self._mark_completed(db, turn))
            if completed:
                await notifications.notify_education_admin(
                    turn.token.campaign_id,
                    turn.token.school_id,
                    turn.participant["participant_type"],
                    turn.module,
                )

        await self.guarded(db, "activity update", lambda: self._touch_activity(db, turn))

    # ── Side effects ─────────────────────────────────────────────────

    async def _update_progress(self, db: AsyncSession, turn: EducationTurn, reply: AgentReply) -> None:
        progress = dict(reply.state or {})
        questions = progress.get("questions_asked", 0)
        progress["estimated_completion"] = min(questions / interviewer.TARGET_QUESTIONS, 1)

        session = turn.session
        session.education_session_context = {
            **(session.education_session_context or {}),
            "module": turn.module,
            "progress": progress,
        }
        session.last_message_at = datetime.now(timezone.utc)
        flag_modified(session, "education_session_context")
        await db.flush()

    async def _record_flag(
        self,
        db: AsyncSession,
        turn: EducationTurn,
        user_message: str,
        reply: AgentReply,
        flag: SafeguardingFlag,
    ) -> None:
        db.add(SafeguardingFlagRecord(
            agent_session_id=turn.session.id,
            trigger_type=flag.type,
            flag=flag.to_dict(),
        ))
        await db.flush()

        if not flag.needs_alert:
            return

        token = turn.token
        alert = SafeguardingAlert(
            campaign_id=token.campaign_id,
            school_id=token.school_id,
            participant_token=token.token,
            participant_type=token.participant_type,
            cohort_metadata=token.cohort_metadata or {},
            trigger_type=flag.type,
            trigger_content=user_message,
            trigger_context=reply.content,
            trigger_confidence=flag.confidence,
            ai_analysis={
                "trigger_type": flag.type,
                "trigger_content": flag.content,
                "agent_assessment": reply.safeguarding_alert,
            },
        )
        db.add(alert)
        await db.flush()
        logger.warning(
            "Safeguarding alert %s (%s, confidence=%.2f) for %s...",
            alert.id, flag.type, flag.confidence, turn.ctx.token_prefix,
        )
        await notifications.notify_safeguarding_alert(token.campaign_id, alert.id, flag.type)

    async def _mark_completed(self, db: AsyncSession, turn: EducationTurn) -> None:
        token = turn.token
        completed = list(token.completed_modules or [])
        if turn.module not in completed:
            completed.append(turn.module)
            token.completed_modules = completed
            flag_modified(token, "completed_modules")
            await db.flush()
        logger.info("Education module %s completed for %s...", turn.module, turn.ctx.token_prefix)

    async def _touch_activity(self, db: AsyncSession, turn: EducationTurn) -> None:
        turn.token.last_activity_at = datetime.now(timezone.utc)
        await db.flush()
