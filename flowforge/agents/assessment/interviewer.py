"""
Assessment interviewer: Industry 4.0 readiness interviews with campaign stakeholders.
"""

import logging
import re
from datetime import datetime, timezone

from ...orchestrator.base_handler import AgentReply
from ...services.llm import chat

logger = logging.getLogger(__name__)

COMPLETE_AFTER = 15

# Topics recorded when either side mentions them
TOPIC_KEYWORDS = [
    "MQTT", "UNS", "Sparkplug", "ISA-95", "OPC UA", "SCADA", "MES", "ERP",
    "IoT", "sensors", "data", "integration", "automation", "maintenance",
    "quality", "inventory", "scheduling", "downtime", "efficiency",
]
_TOPIC_RES = [(k, re.compile(re.escape(k), re.IGNORECASE)) for k in TOPIC_KEYWORDS]

ROLE_FOCUS = {
    "executive": "Focus on strategy, investment priorities and how success is measured.",
    "it_technology": "Focus on systems, integration, data flows and technical debt.",
    "operations": "Focus on day-to-day processes, bottlenecks and downtime.",
    "quality": "Focus on quality control, traceability and compliance.",
    "maintenance": "Focus on maintenance strategy, asset data and unplanned stops.",
}


def initial_state() -> dict:
    return {"phase": "introduction", "topics_covered": [], "questions_asked": 0}


def phase_for(questions_asked: int) -> str:
    if questions_asked <= 1:
        return "introduction"
    if questions_asked <= 4:
        return "warm_up"
    if questions_asked <= 10:
        return "deep_dive"
    if questions_asked <= 14:
        return "synthesis"
    return "completed"


def update_state(state: dict, user_message: str, reply: str) -> dict:
    questions_asked = (state.get("questions_asked") or 0) + 1
    phase = phase_for(questions_asked)

    topics = list(state.get("topics_covered") or [])
    for keyword, pattern in _TOPIC_RES:
        if keyword not in topics and (pattern.search(user_message) or pattern.search(reply)):
            topics.append(keyword)

    return {
        **state,
        "phase": phase,
        "questions_asked": questions_asked,
        "topics_covered": topics,
        "last_interaction": datetime.now(timezone.utc).isoformat(),
        "is_complete": questions_asked >= COMPLETE_AFTER,
    }


def _system_prompt(stakeholder: dict, state: dict) -> str:
    lines = [
        f"You are an experienced Industry 4.0 consultant interviewing {stakeholder['name']}, "
        f"{stakeholder['title'] or 'a stakeholder'} at {stakeholder['company_name']}.",
        ROLE_FOCUS.get(stakeholder["role"] or "", "Focus on their role, challenges and opportunities."),
        f"Current phase: {state.get('phase', 'introduction')}. "
        f"Questions asked: {state.get('questions_asked', 0)} of about {COMPLETE_AFTER}.",
        "Your reply is spoken aloud. Ask one question at a time in two or three short sentences.",
    ]
    if state.get("topics_covered"):
        lines.append(f"Already covered: {', '.join(state['topics_covered'])}.")
    return "\n".join(lines)


async def process_message(message: str, stakeholder: dict, history: list[dict], state: dict) -> AgentReply:
    result = await chat(
        messages=[*({"role": t["role"], "content": t["content"]} for t in history),
                  {"role": "user", "content": message}],
        system=_system_prompt(stakeholder, state),
        max_tokens=2048,
    )
    updated = update_state(state, message, result.content)
    return AgentReply(
        content=result.content,
        state=updated,
        is_complete=updated["is_complete"],
        usage={
            "input_tokens": result.input_tokens,
            "output_tokens": result.output_tokens,
            "model": result.model,
        },
    )


async def generate_greeting(stakeholder: dict) -> AgentReply:
    """Opening turn: introduce the interview and ask about their role."""
    result = await chat(
        messages=[{"role": "user", "content": "Generate the greeting message."}],
        system=(
            f"You are an experienced Industry 4.0 consultant starting an interview with "
            f"{stakeholder['name']}, {stakeholder['title'] or 'a stakeholder'} at "
            f"{stakeholder['company_name']}. Thank them, say it takes 20-30 minutes, and ask "
            "an opening question about their role. Three or four sentences, spoken aloud."
        ),
        max_tokens=512,
    )
    return AgentReply(
        content=result.content,
        state=initial_state(),
        usage={
            "input_tokens": result.input_tokens,
            "output_tokens": result.output_tokens,
            "model": result.model,
        },
    )
