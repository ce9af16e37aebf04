import pytest
from sqlalchemy import select

from flowforge.agents.education import interviewer
from flowforge.agents.education.handler import EducationHandler
from flowforge.core.errors import InvalidToken, NoActiveSession, SessionDataIncomplete, SessionDeactivated
from flowforge.models.agent_session import EDUCATION_INTERVIEW, AgentMessage, AgentSession
from flowforge.models.campaign import Campaign
from flowforge.models.education import (
    ParticipantToken,
    SafeguardingAlert,
    SafeguardingFlagRecord,
    School,
)
from flowforge.orchestrator.context import SessionContext
from flowforge.services import notifications

TOKEN = "ff_edu_8Hk2pQ"
CTX = SessionContext(session_token=TOKEN, module_id="student_wellbeing", vertical_key="education")


async def _seed(db, *, active=True, with_session=True, with_school=True, progress=None):
    school = School(name="Riverside Academy") if with_school else None
    campaign = Campaign(name="Spring wellbeing pulse")
    token = ParticipantToken(
        token=TOKEN,
        participant_type="student",
        cohort_metadata={"year_band": "9"},
        school=school,
        campaign=campaign,
        is_active=active,
    )
    db.add(token)
    await db.flush()

    session_id = None
    if with_session:
        session = AgentSession(
            agent_type=EDUCATION_INTERVIEW,
            participant_token_id=token.id,
            conversation_history=[],
            education_session_context={
                "module": "student_wellbeing",
                "progress": progress or interviewer.initial_progress(),
            },
        )
        db.add(session)
        await db.flush()
        session_id = session.id

    await db.commit()
    db.expunge_all()
    return session_id


async def _rows(db, model, **filters):
    result = await db.execute(select(model).filter_by(**filters))
    return result.scalars().all()


@pytest.fixture
def notify(monkeypatch: pytest.MonkeyPatch, recorder):
    calls = {"admin": recorder(), "alert": recorder()}
    monkeypatch.setattr(notifications, "notify_education_admin", calls["admin"])
    monkeypatch.setattr(notifications, "notify_safeguarding_alert", calls["alert"])
    return calls


async def test_first_turn_greets_with_school_name(db, monkeypatch: pytest.MonkeyPatch, fake_chat):
    await _seed(db)
    chat = fake_chat()
    monkeypatch.setattr(interviewer, "chat", chat)

    reply = await EducationHandler().handle(db, CTX, None)

    assert reply == interviewer.GREETINGS["student"].format(school="Riverside Academy")
    assert "Riverside Academy" in reply
    assert chat.calls == []
    assert await _rows(db, AgentMessage) == []


async def test_first_turn_with_unknown_token_still_greets(db, monkeypatch: pytest.MonkeyPatch, fake_chat):
    monkeypatch.setattr(interviewer, "chat", fake_chat())
    ctx = SessionContext(session_token="ff_edu_unknown", stakeholder_name="teacher")

    reply = await EducationHandler().handle(db, ctx, None)

    assert reply == interviewer.GREETINGS["teacher"].format(school="your school")


async def test_unknown_token_with_message_is_rejected(db):
    with pytest.raises(InvalidToken):
        await EducationHandler().handle(db, CTX, "hello")


async def test_deactivated_token_is_rejected(db):
    await _seed(db, active=False)
    with pytest.raises(SessionDeactivated):
        await EducationHandler().handle(db, CTX, "hello")


async def test_missing_module_session_is_rejected(db):
    await _seed(db, with_session=False)
    with pytest.raises(NoActiveSession):
        await EducationHandler().handle(db, CTX, "hello")


async def test_missing_school_is_incomplete(db):
    await _seed(db, with_school=False)
    with pytest.raises(SessionDataIncomplete):
        await EducationHandler().handle(db, CTX, "hello")


async def test_history_round_trip(db, monkeypatch: pytest.MonkeyPatch, fake_chat, notify):
    session_id = await _seed(db)
    chat = fake_chat("That's great. What do you enjoy most?", "Tell me more about them.")
    monkeypatch.setattr(interviewer, "chat", chat)
    handler = EducationHandler()

    first = await handler.handle(db, CTX, "Pretty good thanks")
    await handler.handle(db, CTX, "My friends are great")

    assert first == "That's great. What do you enjoy most?"
    assert [(m["role"], m["content"]) for m in chat.calls[1]["messages"]] == [
        ("user", "Pretty good thanks"),
        ("assistant", "That's great. What do you enjoy most?"),
        ("user", "My friends are great"),
    ]

    messages = await db.execute(
        select(AgentMessage)
        .where(AgentMessage.agent_session_id == session_id)
        .order_by(AgentMessage.sequence_number)
    )
    assert [(m.sequence_number, m.role) for m in messages.scalars()] == [
        (0, "user"), (1, "assistant"), (2, "user"), (3, "assistant"),
    ]


async def test_progress_is_stored_after_each_turn(db, monkeypatch: pytest.MonkeyPatch, fake_chat, notify):
    session_id = await _seed(db)
    monkeypatch.setattr(interviewer, "chat", fake_chat("Thanks! How are your friends?"))

    await EducationHandler().handle(db, CTX, "I feel lonely at lunch sometimes")

    session = await db.get(AgentSession, session_id)
    progress = session.education_session_context["progress"]
    assert session.education_session_context["module"] == "student_wellbeing"
    assert progress["questions_asked"] == 1
    assert progress["phase"] == "rapport"
    assert progress["estimated_completion"] == pytest.approx(1 / 15)
    assert progress["domains_explored"] == ["belonging"]
    assert session.last_message_at is not None

    token = (await _rows(db, ParticipantToken, token=TOKEN))[0]
    assert token.last_activity_at is not None


async def test_high_confidence_concern_raises_alert(db, monkeypatch: pytest.MonkeyPatch, fake_chat, notify):
    session_id = await _seed(db)
    chat = fake_chat("I'm really glad you told me. A trusted adult at school can help.")
    monkeypatch.setattr(interviewer, "chat", chat)

    reply = await EducationHandler().handle(db, CTX, "I keep hurting myself after school")

    assert "trusted adult" in chat.calls[0]["system"]

    flags = await _rows(db, SafeguardingFlagRecord, agent_session_id=session_id)
    assert [f.trigger_type for f in flags] == ["self_harm"]
    assert flags[0].flag["confidence"] == 0.9

    alerts = await _rows(db, SafeguardingAlert)
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.participant_token == TOKEN
    assert alert.trigger_content == "I keep hurting myself after school"
    assert alert.trigger_context == reply
    assert alert.status == "open"
    assert alert.cohort_metadata == {"year_band": "9"}

    assert len(notify["alert"].calls) == 1
    assert notify["alert"].calls[0][0][1:] == (alert.id, "self_harm")


async def test_low_confidence_concern_is_flagged_without_alert(db, monkeypatch: pytest.MonkeyPatch, fake_chat, notify):
    session_id = await _seed(db)
    monkeypatch.setattr(interviewer, "chat", fake_chat("Thank you for sharing that."))

    await EducationHandler().handle(db, CTX, "Lunchtime makes me uncomfortable")

    flags = await _rows(db, SafeguardingFlagRecord, agent_session_id=session_id)
    assert [f.trigger_type for f in flags] == ["abuse_disclosure"]
    assert await _rows(db, SafeguardingAlert) == []
    assert notify["alert"].calls == []


async def test_final_question_completes_module_with_fallback_closing(
    db, monkeypatch: pytest.MonkeyPatch, fake_chat, notify
):
    progress = {**interviewer.initial_progress(), "phase": "open_exploration", "questions_asked": 12}
    await _seed(db, progress=progress)
    monkeypatch.setattr(interviewer, "chat", fake_chat("Anything else?", RuntimeError("llm down")))

    reply = await EducationHandler().handle(db, CTX, "No, that's everything")

    assert reply == interviewer.CLOSING_FALLBACK

    token = (await _rows(db, ParticipantToken, token=TOKEN))[0]
    assert token.completed_modules == ["student_wellbeing"]

    assert len(notify["admin"].calls) == 1
    args = notify["admin"].calls[0][0]
    assert args == (token.campaign_id, token.school_id, "student", "student_wellbeing")

    last = await db.execute(
        select(AgentMessage).where(AgentMessage.role == "assistant")
    )
    assert [m.content for m in last.scalars()] == [interviewer.CLOSING_FALLBACK]


async def test_agent_failure_propagates(db, monkeypatch: pytest.MonkeyPatch, fake_chat):
    await _seed(db)
    monkeypatch.setattr(interviewer, "chat", fake_chat(RuntimeError("provider down")))

    with pytest.raises(RuntimeError):
        await EducationHandler().handle(db, CTX, "hello")
