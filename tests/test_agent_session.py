import pytest
from sqlalchemy import select

from flowforge.models.agent_session import ASSESSMENT_INTERVIEW, AgentSession
from flowforge.services import agent_session
from flowforge.services.agent_session import (
    append_messages,
    find_or_create_agent_session,
    load_messages,
    normalize_history,
)


async def _count(db) -> int:
    return len((await db.execute(select(AgentSession))).scalars().all())


async def test_creates_once_then_reuses(db):
    first = await find_or_create_agent_session(
        db, "assignment-1", ASSESSMENT_INTERVIEW, session_context={"phase": "introduction"}
    )
    second = await find_or_create_agent_session(db, "assignment-1", ASSESSMENT_INTERVIEW)

    assert first.id == second.id
    assert first.session_context == {"phase": "introduction"}
    assert first.conversation_history == []
    assert await _count(db) == 1


async def test_other_agent_type_gets_its_own_session(db):
    a = await find_or_create_agent_session(db, "x", ASSESSMENT_INTERVIEW)
    b = await find_or_create_agent_session(db, "x", "archetype_interview")
    assert a.id != b.id


async def test_concurrent_insert_returns_winner(db, monkeypatch: pytest.MonkeyPatch):
    winner = AgentSession(
        stakeholder_session_id="assignment-2",
        agent_type=ASSESSMENT_INTERVIEW,
        conversation_history=[],
    )
    db.add(winner)
    await db.commit()

    real_select = agent_session._select_agent_session
    calls = []

    async def stale_first_read(*args, **kwargs):
        # The first read misses the row, as if the other turn had not committed yet
        calls.append(args[1:])
        if len(calls) == 1:
            return None
        return await real_select(*args, **kwargs)

    monkeypatch.setattr(agent_session, "_select_agent_session", stale_first_read)

    session = await find_or_create_agent_session(db, "assignment-2", ASSESSMENT_INTERVIEW)

    assert session.id == winner.id
    assert len(calls) == 2
    assert await _count(db) == 1


def test_normalize_history_backfills_timestamps():
    turns = normalize_history([
        {"role": "assistant", "content": "Hi", "timestamp": "2026-01-01T00:00:00+00:00"},
        {"role": "user", "content": "Hello"},
    ])
    assert turns[0]["timestamp"] == "2026-01-01T00:00:00+00:00"
    assert turns[1]["timestamp"]
    assert normalize_history(None) == []


async def test_append_messages_continues_sequence(db):
    await append_messages(db, "edu-1", [("user", "one"), ("assistant", "two")])
    await append_messages(db, "edu-1", [("user", "three"), ("assistant", "four")])
    await append_messages(db, "edu-2", [("user", "other")])

    messages = await load_messages(db, "edu-1")
    assert [m["content"] for m in messages] == ["one", "two", "three", "four"]
    assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
    assert all(m["timestamp"] for m in messages)
