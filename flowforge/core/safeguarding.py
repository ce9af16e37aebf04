"""
Safeguarding scan: local keyword/pattern detection over participant messages.

Runs synchronously before the education interviewer is called. Each hit is a
flag with a type, the matched excerpt and a fixed confidence in [0, 1].
Flags at or above ALERT_CONFIDENCE escalate to a safeguarding alert.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────────────

ALERT_CONFIDENCE = 0.7

SELF_HARM = "self_harm"
HARM_TO_OTHERS = "harm_to_others"
ABUSE_DISCLOSURE = "abuse_disclosure"
IMMEDIATE_DANGER = "immediate_danger"
EXPLICIT_REQUEST = "explicit_request"


@dataclass
class SafeguardingFlag:
    """One detected concern in a participant message."""
    type: str
    content: str
    confidence: float
    detected_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def needs_alert(self) -> bool:
        return self.confidence >= ALERT_CONFIDENCE

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "content": self.content,
            "confidence": self.confidence,
            "detected_at": self.detected_at,
        }


_PATTERNS: list[tuple[re.Pattern, str, float]] = [
    # Self-harm
    (re.compile(r"\b(hurt(ing)? myself|harm(ing)? myself|cut(ting)? myself)\b", re.I), SELF_HARM, 0.9),
    (re.compile(r"\b(don'?t want to (be here|live|exist)|end (it|my life|everything))\b", re.I), SELF_HARM, 0.85),
    (re.compile(r"\b(suicid\w*|kill myself|take my (own )?life)\b", re.I), SELF_HARM, 0.95),
    (re.compile(r"\b(nobody (would|will) (care|notice|miss me))\b", re.I), SELF_HARM, 0.75),
    (re.compile(r"\b(better off (without me|dead|gone))\b", re.I), SELF_HARM, 0.85),

    # Harm to others
    (re.compile(r"\b(hurt(ing)? (someone|them|him|her)|want to (hurt|harm|kill))\b", re.I), HARM_TO_OTHERS, 0.8),
    (re.compile(r"\b(bring a (weapon|gun|knife)|shoot|stab)\b", re.I), HARM_TO_OTHERS, 0.9),

    # Abuse disclosure
    (re.compile(r"\b(hits? me|beats? me|abuse\w*|molest\w*|touch(ed|es|ing) me (wrong|inappropriately))\b", re.I), ABUSE_DISCLOSURE, 0.85),
    (re.compile(r"\b(scared? (to go home|of my|of going))\b", re.I), ABUSE_DISCLOSURE, 0.7),
    (re.compile(r"\b(makes? me (do things|feel unsafe|uncomfortable))\b", re.I), ABUSE_DISCLOSURE, 0.65),

    # Immediate danger
    (re.compile(r"\b(emergency|immediate (help|danger)|happening now)\b", re.I), IMMEDIATE_DANGER, 0.8),
    (re.compile(r"\b(can'?t (stay|be) safe|not safe (here|at home|anywhere))\b", re.I), IMMEDIATE_DANGER, 0.85),

    # Explicit request for help
    (re.compile(r"\b(need (help|someone|to talk)|please (help|contact|call))\b", re.I), EXPLICIT_REQUEST, 0.7),
    (re.compile(r"\b(want (someone|an adult|a teacher) to (know|help|contact))\b", re.I), EXPLICIT_REQUEST, 0.8),
]


def detect_concerns(message: str) -> list[SafeguardingFlag]:
    """
    Scan a message for safeguarding signals.
    Returns one flag per matching pattern (first match of each), in pattern order.
    """
    if not message:
        return []

    flags = []
    for pattern, trigger_type, confidence in _PATTERNS:
        match = pattern.search(message)
        if match:
            flags.append(SafeguardingFlag(
                type=trigger_type,
                content=match.group(0),
                confidence=confidence,
            ))

    if flags:
        logger.warning(
            "Safeguarding scan: %d flag(s) [%s]",
            len(flags), ", ".join(f.type for f in flags),
        )
    return flags
