"""
Education interviewer (Jippity): anonymous school-community interviews.

Phases advance on question count:
    opening → rapport → daily_experience → core_exploration → relationships
    → wellbeing_check → open_exploration → closing (complete)
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ...core.safeguarding import SafeguardingFlag
from ...orchestrator.base_handler import AgentReply
from ...services.llm import chat

logger = logging.getLogger(__name__)

PARTICIPANT_TYPES = ("student", "teacher", "parent", "leadership")
DEFAULT_PARTICIPANT_TYPE = "student"

MODULES = ("student_wellbeing", "teaching_learning", "parent_confidence")
DEFAULT_MODULE = "student_wellbeing"

DEFAULT_EDUCATION_CONFIG = {"modules": [DEFAULT_MODULE], "pilot_type": "standard"}

TARGET_QUESTIONS = 15

CLOSING_FALLBACK = (
    "Thank you so much for sharing your thoughts and experiences with me today. "
    "Your insights are genuinely valuable and will help identify patterns that can "
    "improve outcomes. I really appreciate your openness throughout our conversation."
)

# ── Greetings (first turn, no LLM call) ──────────────────────────────

GREETINGS = {
    "student": (
        "Hi, I'm Jippity! Thanks for taking the time to chat with me today. I'm here to learn "
        "a bit about your experience at {school}. This is a relaxed conversation, and there are "
        "no right or wrong answers. I'm just interested in hearing your thoughts. Before we "
        "start, I want you to know that everything you share is completely confidential. "
        "So, how are you doing today?"
    ),
    "teacher": (
        "Hi, I'm Jippity! Thank you for joining me today. I'm here to gather some insights about "
        "your professional experience at {school}. This is an informal conversation, and I'm "
        "genuinely interested in your perspective on teaching and working here. Everything we "
        "discuss is confidential and will be used to help improve the school environment. "
        "How has your day been so far?"
    ),
    "parent": (
        "Hi, I'm Jippity! Thank you so much for taking the time to speak with me. I'm here to "
        "learn about your experience as a parent with a child at {school}. This is a relaxed "
        "conversation, and your honest feedback is really valuable. Everything you share is "
        "confidential. How are you doing today?"
    ),
    "leadership": (
        "Hi, I'm Jippity! Thank you for making time in your schedule to speak with me. I'm here "
        "to discuss your perspective on {school} and gather your insights as a school leader. "
        "Your feedback is valuable for understanding the broader picture. Everything discussed "
        "is confidential. How has your week been going?"
    ),
}

DEFAULT_GREETING = (
    "Hi, I'm Jippity! Thanks for joining me today. I'm here to have a friendly conversation "
    "and learn about your experience. Everything you share is completely confidential, and "
    "there are no right or wrong answers. How are you doing today?"
)


def greeting(participant_type: Optional[str], school_name: Optional[str]) -> str:
    template = GREETINGS.get((participant_type or "").lower())
    if template is None:
        return DEFAULT_GREETING
    return template.format(school=school_name or "your school")


def coerce_participant_type(value: Optional[str]) -> str:
    value = (value or "").lower()
    return value if value in PARTICIPANT_TYPES else DEFAULT_PARTICIPANT_TYPE


def resolve_module(module_id: Optional[str]) -> str:
    module = (module_id or "").lower()
    return module if module in MODULES else DEFAULT_MODULE


# ── Progress state ───────────────────────────────────────────────────

# Keywords that mark a domain as explored, per module
MODULE_DOMAINS = {
    "student_wellbeing": {
        "belonging": ("belong", "fit in", "included", "lonely", "friends"),
        "safety": ("safe", "bully", "bullied", "scared"),
        "workload": ("homework", "exam", "stress", "pressure", "tired"),
        "support": ("help", "support", "counsellor", "counselor", "talk to"),
        "voice": ("listen", "heard", "say", "opinion"),
    },
    "teaching_learning": {
        "workload": ("workload", "marking", "planning", "hours", "burnout"),
        "leadership": ("leadership", "principal", "head", "management"),
        "collaboration": ("colleague", "team", "department", "collaborat"),
        "development": ("training", "development", "growth", "career"),
        "students": ("student", "behaviour", "behavior", "class"),
    },
    "parent_confidence": {
        "communication": ("email", "newsletter", "communicat", "inform", "update"),
        "progress": ("report", "grades", "progress", "results"),
        "wellbeing": ("happy", "wellbeing", "well-being", "anxious", "worried"),
        "value": ("fees", "value", "worth", "money"),
        "trust": ("trust", "confidence", "listen", "respond"),
    },
}


def initial_progress() -> dict:
    return {
        "phase": "opening",
        "sections_completed": [],
        "questions_asked": 0,
        "rapport_established": False,
        "anonymity_confirmed": False,
        "safeguarding_flags": [],
        "domains_explored": [],
        "domain_coverage_percent": 0,
    }


def phase_for(questions_asked: int) -> str:
    if questions_asked <= 0:
        return "opening"
    if questions_asked == 1:
        return "rapport"
    if questions_asked <= 3:
        return "daily_experience"
    if questions_asked <= 7:
        return "core_exploration"
    if questions_asked <= 9:
        return "relationships"
    if questions_asked <= 11:
        return "wellbeing_check"
    if questions_asked == 12:
        return "open_exploration"
    return "closing"


def update_progress(
    state: dict,
    user_message: str,
    reply: str,
    module: str,
    flags: list[SafeguardingFlag],
) -> dict:
    """Advance the progress object by one answered question."""
    state = {**initial_progress(), **(state or {})}
    questions_asked = state["questions_asked"] + 1
    phase = phase_for(questions_asked)

    sections = list(state["sections_completed"])
    if state["phase"] not in ("opening", phase) and state["phase"] not in sections:
        sections.append(state["phase"])

    domains = MODULE_DOMAINS.get(module, {})
    explored = list(state["domains_explored"])
    text = user_message.lower()
    for domain, keywords in domains.items():
        if domain not in explored and any(k in text for k in keywords):
            explored.append(domain)

    state.update({
        "phase": phase,
        "questions_asked": questions_asked,
        "sections_completed": sections,
        "rapport_established": (
            state["rapport_established"]
            or questions_asked >= 2
            or "thank" in reply.lower()
            or len(user_message) > 100
        ),
        "anonymity_confirmed": True,
        "last_interaction": datetime.now(timezone.utc).isoformat(),
        "is_complete": phase == "closing",
        "safeguarding_flags": state["safeguarding_flags"] + [f.to_dict() for f in flags],
        "domains_explored": explored,
        "domain_coverage_percent": round(len(explored) / len(domains) * 100) if domains else 0,
    })
    return state


# ── Prompts ──────────────────────────────────────────────────────────

TRUST_FRAMING = {
    "student": "Teachers cannot see what they say. Keep language friendly and age-appropriate.",
    "teacher": "Leadership sees patterns, not individuals. This is not an evaluation or HR tool.",
    "parent": "Responses are not linked to their name or their child. You want patterns, not endorsements.",
    "leadership": "You are exploring how leadership intent lands across the school community.",
}

CLOSING_PROMPTS = {
    "student": "Thank them for their honesty and time, remind them nothing is linked to their name, and wish them well.",
    "teacher": "Thank them for their perspective, note it helps identify structural patterns, and remind them responses stay anonymised.",
    "parent": "Thank them for their observations, note they help complete the picture, and remind them responses are aggregated.",
    "leadership": "Thank them for their candour and note you will synthesise this with other perspectives.",
}


def _system_prompt(participant: dict, campaign: dict, module: str, state: dict, flags: list) -> str:
    ptype = participant["participant_type"]
    lines = [
        f"You are Jippity, an anonymous interviewer talking with a {ptype} at {campaign['school']['name']}.",
        TRUST_FRAMING[ptype],
        f"Module: {module.replace('_', ' ')}. Current phase: {state['phase']}. "
        f"Questions asked so far: {state['questions_asked']} of about {TARGET_QUESTIONS}.",
        "Your reply is spoken aloud. Ask one question at a time, keep it to two or three short sentences, no lists or markdown.",
    ]
    if flags:
        lines.append(
            "The participant may have raised a safeguarding concern. Respond with care, do not probe "
            "for detail, and let them know a trusted adult at school can help."
        )
    return "\n".join(lines)


async def process_message(
    message: str,
    participant: dict,
    campaign: dict,
    module: str,
    history: list[dict],
    state: dict,
    flags: list[SafeguardingFlag],
) -> AgentReply:
    """One interview turn. Raises on LLM failure."""
    result = await chat(
        messages=[*history, {"role": "user", "content": message}],
        system=_system_prompt(participant, campaign, module, state, flags),
    )
    updated = update_progress(state, message, result.content, module, flags)

    alert = None
    if flags:
        alert = {
            "phase": updated["phase"],
            "questions_asked": updated["questions_asked"],
            "trigger_types": sorted({f.type for f in flags}),
            "max_confidence": max(f.confidence for f in flags),
            "responded_supportively": True,
        }

    return AgentReply(
        content=result.content,
        state=updated,
        is_complete=updated["is_complete"],
        usage={
            "input_tokens": result.input_tokens,
            "output_tokens": result.output_tokens,
            "model": result.model,
        },
        safeguarding_alert=alert,
    )


async def generate_closing(participant: dict, campaign: dict, state: dict) -> str:
    """Spoken closing for a finished interview. Raises on LLM failure."""
    ptype = participant["participant_type"]
    result = await chat(
        messages=[{"role": "user", "content": "Generate the closing message."}],
        system=(
            f"Write a closing message for a {ptype} at {campaign['school']['name']} who has "
            f"answered {state.get('questions_asked', 0)} questions. {CLOSING_PROMPTS[ptype]} "
            "Two or three sentences, spoken aloud."
        ),
        max_tokens=256,
    )
    return result.content
