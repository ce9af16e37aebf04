"""
Session context extraction.

The voice platform has no structured side channel: it interpolates the
session's dynamic variables into the system prompt as colon-delimited
`key: value` tokens, e.g.

    ... session_token: ff_edu_8Hk2 module_id: student_wellbeing
        vertical_key: education stakeholder_name: student ...

Everything here is a pure function of the message list.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

DEFAULT_VERTICAL = "education"

_TEST_TOKEN_RE = re.compile(r"session_token:\s*(?P<token>test[-_]\S+)")
_TOKEN_RE = re.compile(r"session_token:\s*(?P<token>\S+)")
_MODULE_RE = re.compile(r"module_id:\s*(?P<module>\w+(?:-\w+)?)")
_VERTICAL_RE = re.compile(r"vertical_key:\s*(?P<vertical>\w+)")
_STAKEHOLDER_RE = re.compile(r"stakeholder_name:\s*(?P<name>[\w-]+)")


@dataclass(frozen=True)
class SessionContext:
    session_token: Optional[str] = None
    module_id: Optional[str] = None
    vertical_key: str = DEFAULT_VERTICAL
    stakeholder_name: Optional[str] = None
    is_test_mode: bool = False

    @property
    def token_prefix(self) -> str:
        """Loggable form of the token."""
        return (self.session_token or "")[:10]


def _group(pattern: re.Pattern, text: str, name: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(name) if match else None


def system_prompt_of(messages: Sequence[Mapping[str, Any]]) -> str:
    """Content of the most recent system message, or "" if there is none."""
    for message in reversed(messages):
        if message.get("role") == "system":
            return message.get("content") or ""
    return ""


def parse_session_context(messages: Sequence[Mapping[str, Any]]) -> SessionContext:
    """
    Recover the session parameters embedded in the system prompt.

    A reserved test token (`test-...` / `test_...`) wins over any other
    token and switches the turn to test mode. Otherwise the first
    `session_token:` occurrence is taken as-is.
    """
    prompt = system_prompt_of(messages)

    test_token = _group(_TEST_TOKEN_RE, prompt, "token")
    if test_token:
        session_token, is_test_mode = test_token, True
    else:
        session_token, is_test_mode = _group(_TOKEN_RE, prompt, "token"), False

    return SessionContext(
        session_token=session_token,
        module_id=_group(_MODULE_RE, prompt, "module"),
        vertical_key=_group(_VERTICAL_RE, prompt, "vertical") or DEFAULT_VERTICAL,
        stakeholder_name=_group(_STAKEHOLDER_RE, prompt, "name"),
        is_test_mode=is_test_mode,
    )


def latest_user_message(messages: Sequence[Mapping[str, Any]]) -> Optional[str]:
    """
    Content of the last user message. None means this is the opening turn:
    the voice platform connects before the participant has said anything.
    """
    for message in reversed(messages):
        if message.get("role") == "user":
            content = (message.get("content") or "").strip()
            return content or None
    return None
