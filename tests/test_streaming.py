import asyncio
import json

import pytest

from flowforge.core.errors import InvalidToken
from flowforge.services.streaming import (
    DONE,
    GENERIC_ERROR,
    apology,
    completion_json,
    split_into_chunks,
    stream_completion,
    stream_error,
)


def _payload(event: str) -> dict:
    assert event.startswith("data: ") and event.endswith("\n\n")
    return json.loads(event[len("data: "):].strip())


async def _collect(events):
    return [e async for e in events]


async def _ready(value):
    return value


async def _boom():
    raise RuntimeError("database exploded: secret internals")


def _deltas(events):
    return [_payload(e)["choices"][0]["delta"] for e in events if e != DONE]


def test_split_groups_four_words_with_trailing_space():
    assert split_into_chunks("one two three four five six seven eight nine") == [
        "one two three four ",
        "five six seven eight ",
        "nine",
    ]


def test_split_exactly_four_words_is_one_chunk():
    assert split_into_chunks("How are you today?") == ["How are you today?"]


def test_split_collapses_whitespace_and_handles_empty():
    assert split_into_chunks("  a\n b   c ") == ["a b c"]
    assert split_into_chunks("") == []


async def test_role_chunk_is_flushed_before_content_resolves():
    pending = asyncio.get_running_loop().create_future()
    events = stream_completion(pending, chunk_delay=0)

    first = await events.__anext__()
    assert not pending.done()
    assert _payload(first)["choices"][0]["delta"] == {"role": "assistant", "content": ""}
    assert _payload(first)["choices"][0]["finish_reason"] is None

    pending.set_result("Hello there, how are you doing today?")
    rest = await _collect(events)

    content = "".join(d.get("content", "") for d in _deltas(rest))
    assert content == "Hello there, how are you doing today?"
    assert rest[-1] == DONE
    assert _payload(rest[-2])["choices"][0] == {
        "index": 0, "delta": {}, "logprobs": None, "finish_reason": "stop",
    }


async def test_chunks_share_id_created_and_model():
    events = await _collect(stream_completion(_ready("a b c d e f g h i j"), chunk_delay=0))
    payloads = [_payload(e) for e in events if e != DONE]

    assert len({p["id"] for p in payloads}) == 1
    assert len({p["created"] for p in payloads}) == 1
    assert {p["model"] for p in payloads} == {"flowforge-interview-agent"}
    assert payloads[0]["id"].startswith("chatcmpl-")
    assert all(p["object"] == "chat.completion.chunk" for p in payloads)


async def test_content_is_grouped_into_four_word_chunks():
    events = await _collect(stream_completion(_ready("one two three four five six"), chunk_delay=0))
    deltas = _deltas(events)

    # role, 2 content chunks, stop
    assert len(deltas) == 4
    assert deltas[1] == {"content": "one two three four "}
    assert deltas[2] == {"content": "five six"}


async def test_empty_reply_still_terminates():
    events = await _collect(stream_completion(_ready(""), chunk_delay=0))
    assert len(events) == 3
    assert _deltas(events) == [{"role": "assistant", "content": ""}, {}]
    assert events[-1] == DONE


async def test_failed_content_becomes_generic_apology():
    events = await _collect(stream_completion(_boom(), chunk_delay=0))

    assert len(events) == 3
    apology_chunk = _payload(events[1])["choices"][0]
    assert apology_chunk["delta"] == {"content": apology(GENERIC_ERROR)}
    assert apology_chunk["finish_reason"] == "stop"
    assert "secret internals" not in events[1]
    assert events[-1] == DONE


async def test_session_error_reason_is_not_leaked():
    async def invalid():
        raise InvalidToken("ff_edu_")

    events = await _collect(stream_completion(invalid(), chunk_delay=0))
    assert "Invalid session token" not in "".join(events)
    assert _deltas(events)[1] == {"content": apology(GENERIC_ERROR)}


async def test_stream_error_has_no_role_chunk():
    events = await _collect(stream_error("Session context not found"))
    assert len(events) == 2
    choice = _payload(events[0])["choices"][0]
    assert choice["delta"] == {
        "content": "I apologize, but Session context not found. Could you please try again?"
    }
    assert choice["finish_reason"] == "stop"
    assert events[1] == DONE


def test_completion_json_shape():
    body = completion_json("Hi there")
    assert body["object"] == "chat.completion"
    assert body["model"] == "flowforge-interview-agent"
    assert body["choices"] == [{
        "index": 0,
        "message": {"role": "assistant", "content": "Hi there"},
        "finish_reason": "stop",
    }]


@pytest.mark.parametrize("reason", [GENERIC_ERROR, "Session context not found"])
def test_apology_wording(reason):
    assert apology(reason) == f"I apologize, but {reason}. Could you please try again?"
