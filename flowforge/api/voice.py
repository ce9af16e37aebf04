"""
Voice API: custom LLM endpoint for the conversational voice platform.

OPTIONS /api/voice/chat/completions: CORS preflight
POST    /api/voice/chat/completions: OpenAI-compatible chat completion (SSE by default)

Session parameters arrive inside the system prompt. Every failure after auth
is answered in-band with an apology: the caller is a live voice call.
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict

from ..core.auth import verify_voice_caller
from ..core.errors import SessionContextMissing
from ..orchestrator.context import latest_user_message, parse_session_context
from ..orchestrator.orchestrator import handle_voice_turn, start_voice_turn
from ..services.streaming import (
    CORS_HEADERS,
    GENERIC_ERROR,
    SSE_HEADERS,
    completion_json,
    stream_completion,
    stream_error,
)

logger = logging.getLogger(__name__)

voice_router = APIRouter(tags=["voice"])


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str
    content: Optional[str] = ""


class VoiceCompletionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage] = []
    stream: bool = True


def _sse(events: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


@voice_router.options("/chat/completions")
async def voice_preflight():
    return JSONResponse({}, headers=CORS_HEADERS)


@voice_router.post("/chat/completions")
async def voice_chat_completions(request: Request, authorization: str = Header(default="")):
    """
    One voice turn.

    Streaming (default): role chunk flushed at once, reply chunks once the
    interviewer answers. Non-streaming: a single chat.completion object.
    """
    try:
        verify_voice_caller(authorization)
    except PermissionError as e:
        logger.warning("Voice auth rejected: %s", e)
        return PlainTextResponse("Unauthorized", status_code=401, headers=CORS_HEADERS)

    try:
        # Parsed by hand so a malformed body still gets an in-band apology, not a 422
        body = VoiceCompletionRequest.model_validate(await request.json())
        messages = [m.model_dump() for m in body.messages]

        ctx = parse_session_context(messages)
        logger.info(
            "Voice request: %d messages | token=%s | module=%s | vertical=%s | stakeholder=%s | test=%s",
            len(messages), bool(ctx.session_token), ctx.module_id,
            ctx.vertical_key, ctx.stakeholder_name, ctx.is_test_mode,
        )

        if not ctx.session_token:
            logger.error("No session token found in system prompt")
            return _sse(stream_error(SessionContextMissing.reason))

        user_message = latest_user_message(messages)

        if body.stream:
            return _sse(stream_completion(start_voice_turn(ctx, user_message)))

        reply = await handle_voice_turn(ctx, user_message)
        return JSONResponse(completion_json(reply), headers=CORS_HEADERS)

    except Exception as e:
        logger.exception("Voice completion failed: %s", e)
        return _sse(stream_error(GENERIC_ERROR))
