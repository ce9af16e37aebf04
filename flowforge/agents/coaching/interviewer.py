"""
Archetype interviewer: leadership archetype discovery for coaching clients.

19 questions in four sections. Each answer is a letter A-E mapping to one of
five archetypes; ranked questions take a first and a second choice.

    opening → context (Q1-3) → default_mode (Q4-12) → authentic_mode (Q13-16)
    → friction_signals (Q17-19) → closing → completed

Scoring: first choice 2 points, second choice 1 point, per section.
"""

import copy
import logging
import re
from dataclasses import dataclass
from typing import Optional

from ...orchestrator.base_handler import AgentReply
from ...services.llm import chat

logger = logging.getLogger(__name__)

ARCHETYPES = {
    "A": "anchor",
    "B": "catalyst",
    "C": "steward",
    "D": "wayfinder",
    "E": "architect",
}


@dataclass(frozen=True)
class Question:
    index: int
    section: str
    ranked: bool
    scored: bool

    @property
    def id(self) -> str:
        return f"Q{self.index}"


QUESTIONS = (
    [Question(i, "context", ranked=False, scored=False) for i in range(1, 4)]
    + [Question(i, "default_mode", ranked=True, scored=True) for i in range(4, 13)]
    + [Question(i, "authentic_mode", ranked=True, scored=True) for i in range(13, 17)]
    + [Question(i, "friction_signals", ranked=False, scored=True) for i in range(17, 20)]
)
TOTAL_QUESTIONS = len(QUESTIONS)

_SCORE_BUCKET = {"default_mode": "default", "authentic_mode": "authentic", "friction_signals": "friction"}


def _zero_scores() -> dict:
    return {name: 0 for name in ARCHETYPES.values()}


def initial_state() -> dict:
    return {
        "phase": "opening",
        "current_question_index": 0,
        "responses": {},
        "context": {},
        "scores": {"default": _zero_scores(), "authentic": _zero_scores(), "friction": _zero_scores()},
    }


def question_at(index: int) -> Optional[Question]:
    if 1 <= index <= TOTAL_QUESTIONS:
        return QUESTIONS[index - 1]
    return None


def phase_for(index: int) -> str:
    if index <= 0:
        return "opening"
    if index <= 3:
        return "context"
    if index <= 12:
        return "default_mode"
    if index <= 16:
        return "authentic_mode"
    if index <= 19:
        return "friction_signals"
    return "closing"


# ── Selection parsing ────────────────────────────────────────────────

_RANKED_RE = re.compile(
    r"([A-E])\s+(?:is\s+)?(?:most|first|#1|number\s+one).*?([A-E])\s+(?:is\s+)?(?:second|next|#2|number\s+two)",
    re.IGNORECASE,
)
_REVERSE_RANKED_RE = re.compile(r"(?:most|first).*?(?:is\s+)?\b([A-E])\b.*?(?:second|next).*?(?:is\s+)?\b([A-E])\b", re.IGNORECASE)
_TWO_LETTERS_RE = re.compile(r"\b([A-E])\s*(?:and|&|,)\s*([A-E])\b", re.IGNORECASE)
_END_LETTER_RE = re.compile(r"\b([A-E])(?:\s*(?:and|then|,|&)\s*([A-E]))?\s*[.!?]?\s*$", re.IGNORECASE)
_START_LETTER_RE = re.compile(r"^([A-E])\b", re.IGNORECASE)
_CHOICE_RE = re.compile(r"(?:i\s+)?(?:choose|pick|select|go\s+with|say|think)\s+(?:option\s+)?([A-E])\b", re.IGNORECASE)
_OPTION_RE = re.compile(r"\b(?:option|answer|choice)\s+([A-E])\b", re.IGNORECASE)


def parse_selection(message: str) -> tuple[Optional[str], Optional[str]]:
    """
    (most_like_me, second_most_like_me) from a spoken answer, or (None, None).
    Patterns are tried from most to least specific so a stray article "a"
    in a sentence is not taken as an answer.
    """
    msg = (message or "").strip()
    if not msg:
        return None, None

    for pattern in (_RANKED_RE, _REVERSE_RANKED_RE, _TWO_LETTERS_RE):
        match = pattern.search(msg)
        if match:
            return match.group(1).upper(), match.group(2).upper()

    match = _END_LETTER_RE.search(msg)
    if match:
        second = match.group(2)
        return match.group(1).upper(), second.upper() if second else None

    match = _START_LETTER_RE.search(msg)
    if match and len(msg) < 20:
        return match.group(1).upper(), None

    for pattern in (_CHOICE_RE, _OPTION_RE):
        match = pattern.search(msg)
        if match:
            return match.group(1).upper(), None

    return None, None


# ── State machine ────────────────────────────────────────────────────

def update_state(state: dict, user_message: Optional[str]) -> dict:
    """Record the answer to the current question and advance."""
    new = copy.deepcopy(state)

    if state["phase"] == "opening":
        if user_message:
            logger.debug("Opening turn ignores early answer (%d chars); Q1 is asked next", len(user_message))
        new["phase"] = "context"
        new["current_question_index"] = 1
        return new
    if state["phase"] == "closing":
        new["phase"] = "completed"
        return new
    if not user_message:
        return new

    question = question_at(state["current_question_index"])
    if question is None:
        return new

    most, second = parse_selection(user_message)
    if most is None:
        return new  # The interviewer re-asks

    if question.ranked and second is None:
        existing = state["responses"].get(question.id)
        if existing and existing.get("most_like_me") and not existing.get("second_most_like_me"):
            most, second = existing["most_like_me"], most
        else:
            new["responses"][question.id] = {"question_id": question.id, "most_like_me": most, "second_most_like_me": None}
            return new  # Waiting for the second choice

    new["responses"][question.id] = {
        "question_id": question.id,
        "most_like_me": most,
        "second_most_like_me": second if question.ranked else None,
    }
    if question.section == "context":
        new["context"][question.id] = user_message

    next_index = question.index + 1
    if next_index > TOTAL_QUESTIONS:
        new["phase"] = "closing"
        new["current_question_index"] = TOTAL_QUESTIONS
    else:
        new["phase"] = phase_for(next_index)
        new["current_question_index"] = next_index
    return new


def calculate_scores(responses: dict) -> dict:
    scores = {"default": _zero_scores(), "authentic": _zero_scores(), "friction": _zero_scores()}
    for question in QUESTIONS:
        response = responses.get(question.id)
        if not question.scored or not response:
            continue
        bucket = scores[_SCORE_BUCKET[question.section]]
        if response.get("most_like_me"):
            bucket[ARCHETYPES[response["most_like_me"]]] += 2
        if question.ranked and response.get("second_most_like_me"):
            bucket[ARCHETYPES[response["second_most_like_me"]]] += 1
    return scores


def _top(scores: dict) -> str:
    # max() keeps the first of equal scores, so ties go to the earliest archetype
    return max(ARCHETYPES.values(), key=lambda name: scores[name])


def apply_results(state: dict) -> dict:
    scores = calculate_scores(state["responses"])
    state["scores"] = scores
    state["default_archetype"] = _top(scores["default"])
    state["authentic_archetype"] = _top(scores["authentic"])
    state["is_aligned"] = state["default_archetype"] == state["authentic_archetype"]
    return state


# ── Prompt ───────────────────────────────────────────────────────────

def _system_prompt(state: dict, tenant: dict, participant_name: str) -> str:
    brand = tenant.get("brand_config") or {}
    coach = tenant.get("display_name") or "your coach"
    phase = state["phase"]
    lines = [
        f"You are {coach}'s leadership archetype interviewer, speaking with {participant_name}.",
        "Your reply is spoken aloud. Keep it short and warm, no markdown.",
    ]
    if phase == "opening":
        welcome = brand.get("welcomeMessage")
        lines.append(f"Open the session. {welcome}" if welcome else "Welcome them and explain the 19 short questions ahead.")
    elif phase in ("closing", "completed"):
        done = brand.get("completionMessage")
        lines.append(done or "Thank them and tell them their results are ready for their coach.")
    else:
        question = question_at(state["current_question_index"])
        how = "their first and second choice" if question and question.ranked else "one option"
        lines.append(
            f"Ask question {state['current_question_index']} of {TOTAL_QUESTIONS} ({phase.replace('_', ' ')}). "
            f"Offer options A to E and ask for {how}. If their last answer was unclear, ask again."
        )
    return "\n".join(lines)


async def process_message(
    user_message: Optional[str],
    state: Optional[dict],
    history: list[dict],
    tenant: dict,
    participant_name: str,
) -> AgentReply:
    """
    One archetype turn. A None state means the session has not started;
    a None user_message is the opening turn.
    """
    state = state or initial_state()

    messages = [{"role": t["role"], "content": t["content"]} for t in history]
    if user_message:
        messages.append({"role": "user", "content": user_message})
    if not messages:
        messages.append({"role": "user", "content": "[Session started - please provide the opening greeting]"})

    new_state = update_state(state, user_message)
    prompt_state = state if state["phase"] == "opening" else new_state
    result = await chat(messages=messages, system=_system_prompt(prompt_state, tenant, participant_name))

    is_complete = new_state["phase"] == "completed"
    if is_complete and not new_state.get("default_archetype"):
        apply_results(new_state)

    return AgentReply(
        content=result.content,
        state=new_state,
        is_complete=is_complete,
        usage={
            "input_tokens": result.input_tokens,
            "output_tokens": result.output_tokens,
            "model": result.model,
        },
    )
