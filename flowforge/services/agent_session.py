"""
Agent session persistence: find-or-create and conversation turns.

Used by:
  - Assessment and coaching handlers: one session per (stakeholder session, agent type),
    turns kept inline in conversation_history
  - Education handler: pre-provisioned sessions, turns appended to agent_messages
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from ..models.agent_session import AgentMessage, AgentSession

logger = logging.getLogger(__name__)


async def _select_agent_session(
    db: AsyncSession,
    stakeholder_session_id: str,
    agent_type: str,
) -> Optional[AgentSession]:
    result = await db.execute(
        select(AgentSession)
        .where(
            AgentSession.stakeholder_session_id == stakeholder_session_id,
            AgentSession.agent_type == agent_type,
        )
        .order_by(AgentSession.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_or_create_agent_session(
    db: AsyncSession,
    stakeholder_session_id: str,
    agent_type: str,
    agent_model: Optional[str] = None,
    session_context: Optional[dict] = None,
) -> AgentSession:
    """
    Return the agent session for (stakeholder_session_id, agent_type), creating it if absent.

    The insert runs in a SAVEPOINT. If a concurrent first turn wins the race the
    unique constraint rejects ours, the savepoint rolls back and the winner's row
    is returned instead. At most one row exists per pair.
    """
    existing = await _select_agent_session(db, stakeholder_session_id, agent_type)
    if existing:
        return existing

    session = AgentSession(
        stakeholder_session_id=stakeholder_session_id,
        agent_type=agent_type,
        agent_model=agent_model,
        conversation_history=[],
        session_context=session_context,
    )
    try:
        async with db.begin_nested():
            db.add(session)
            await db.flush()
    except IntegrityError:
        logger.info(
            "Agent session for %s/%s created concurrently, reusing it",
            stakeholder_session_id, agent_type,
        )
        existing = await _select_agent_session(db, stakeholder_session_id, agent_type)
        if existing is None:
            raise
        return existing

    logger.info("Created %s session %s for %s", agent_type, session.id, stakeholder_session_id)
    return session


def normalize_history(history: Optional[list]) -> list[dict]:
    """
    Coerce stored turns into [{role, content, timestamp}, ...].
    Legacy rows without a timestamp get "now".
    """
    now = datetime.now(timezone.utc).isoformat()
    return [
        {
            "role": turn.get("role"),
            "content": turn.get("content", ""),
            "timestamp": turn.get("timestamp") or now,
        }
        for turn in (history or [])
    ]


def make_turn(role: str, content: str) -> dict:
    return {
        "role": role,
        "content": content,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def save_conversation(
    db: AsyncSession,
    session: AgentSession,
    history: list[dict],
    session_context: Optional[dict],
) -> None:
    """Persist history, state and the activity timestamp in one update."""
    session.conversation_history = history
    session.session_context = session_context
    session.last_message_at = datetime.now(timezone.utc)
    flag_modified(session, "conversation_history")
    flag_modified(session, "session_context")
    await db.flush()


# ── Education: append-only message rows ──────────────────────────────

async def load_messages(db: AsyncSession, agent_session_id: str) -> list[dict]:
    """Full ordered history of an education session."""
    result = await db.execute(
        select(AgentMessage)
        .where(AgentMessage.agent_session_id == agent_session_id)
        .order_by(AgentMessage.sequence_number, AgentMessage.created_at)
    )
    return [
        {"role": m.role, "content": m.content, "timestamp": m.created_at.isoformat()}
        for m in result.scalars().all()
    ]


async def append_messages(
    db: AsyncSession,
    agent_session_id: str,
    turns: list[tuple[str, str]],
) -> None:
    """Append (role, content) turns after the current last sequence number."""
    result = await db.execute(
        select(func.max(AgentMessage.sequence_number))
        .where(AgentMessage.agent_session_id == agent_session_id)
    )
    last = result.scalar_one_or_none()
    next_seq = 0 if last is None else last + 1

    for offset, (role, content) in enumerate(turns):
        db.add(AgentMessage(
            agent_session_id=agent_session_id,
            role=role,
            content=content,
            sequence_number=next_seq + offset,
        ))
    await db.flush()
