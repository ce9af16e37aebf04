"""
OpenAI-compatible chat completion framing for the voice platform.

stream_completion() flushes the role chunk before the reply exists, so the
platform sees bytes while the interviewer is still thinking. The reply is an
awaitable (normally an asyncio.Task already running) and is only awaited once
the role chunk is out.

Wire format per event:  data: {"object": "chat.completion.chunk", ...}\\n\\n
Terminated by:          data: [DONE]\\n\\n
"""

import asyncio
import json
import logging
import time
from typing import AsyncIterator, Awaitable, Optional

from ..core.config import get_settings
from ..core.errors import SessionError

logger = logging.getLogger(__name__)

GENERIC_ERROR = "an error occurred processing your request"
DONE = "data: [DONE]\n\n"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
    **CORS_HEADERS,
}


def apology(reason: str) -> str:
    return f"I apologize, but {reason}. Could you please try again?"


def split_into_chunks(content: str, words_per_chunk: int = 4) -> list[str]:
    """
    Group words for text-to-speech pacing. Every group but the last keeps a
    trailing space, so joining the groups gives the words single-spaced.
    """
    words = content.split()
    groups = [
        " ".join(words[i:i + words_per_chunk])
        for i in range(0, len(words), words_per_chunk)
    ]
    return [g if i == len(groups) - 1 else g + " " for i, g in enumerate(groups)]


class CompletionStream:
    """id/created/model shared by every chunk of one response."""

    def __init__(self, model: Optional[str] = None):
        now = time.time()
        self.id = f"chatcmpl-{int(now * 1000)}"
        self.created = int(now)
        self.model = model or get_settings().voice_model_name

    def chunk(self, delta: dict, finish_reason: Optional[str] = None) -> str:
        payload = {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{
                "index": 0,
                "delta": delta,
                "logprobs": None,
                "finish_reason": finish_reason,
            }],
        }
        return f"data: {json.dumps(payload)}\n\n"


async def stream_completion(
    content: Awaitable[str],
    chunk_words: Optional[int] = None,
    chunk_delay: Optional[float] = None,
    model: Optional[str] = None,
) -> AsyncIterator[str]:
    """
    SSE events for a reply that may still be in flight.

    role chunk → content chunks → finish chunk → [DONE]
    If `content` raises: role chunk → apology chunk (finish "stop") → [DONE].
    """
    settings = get_settings()
    words = chunk_words or settings.voice_chunk_words
    delay = settings.voice_chunk_delay_seconds if chunk_delay is None else chunk_delay

    stream = CompletionStream(model)
    yield stream.chunk({"role": "assistant", "content": ""})

    try:
        # A caller hang-up cancels this generator, never the turn itself
        text = await asyncio.shield(content)
    except Exception as e:
        if isinstance(e, SessionError):
            logger.warning("Voice turn rejected: %s", e)
        else:
            logger.exception("Voice turn failed: %s", e)
        yield stream.chunk({"content": apology(GENERIC_ERROR)}, finish_reason="stop")
        yield DONE
        return

    for i, piece in enumerate(split_into_chunks(text or "", words)):
        if i:
            await asyncio.sleep(delay)
        yield stream.chunk({"content": piece})

    yield stream.chunk({}, finish_reason="stop")
    yield DONE


async def stream_error(reason: str, model: Optional[str] = None) -> AsyncIterator[str]:
    """Apology-only stream for failures known before any content is produced."""
    stream = CompletionStream(model)
    yield stream.chunk({"content": apology(reason)}, finish_reason="stop")
    yield DONE


def completion_json(content: str, model: Optional[str] = None) -> dict:
    """Non-streaming chat.completion body."""
    stream = CompletionStream(model)
    return {
        "id": stream.id,
        "object": "chat.completion",
        "created": stream.created,
        "model": stream.model,
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    }
