import httpx
import pytest

from flowforge.core.config import get_settings
from flowforge.services import llm


@pytest.fixture
def gemini_key(monkeypatch: pytest.MonkeyPatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "gemini_api_key", "gem-key")
    monkeypatch.setattr(settings, "aiml_api_key", "")
    monkeypatch.setattr(settings, "openai_api_key", "")


def _mock_client(monkeypatch: pytest.MonkeyPatch, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    monkeypatch.setattr(llm, "_get_client", lambda: client)
    return client


async def test_missing_key_raises(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(get_settings(), "gemini_api_key", "")
    with pytest.raises(ValueError):
        await llm.chat([{"role": "user", "content": "hi"}])


async def test_chat_returns_content_and_usage(monkeypatch: pytest.MonkeyPatch, gemini_key):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.read()
        return httpx.Response(200, json={
            "model": "gemini-2.5-flash",
            "choices": [{"message": {"role": "assistant", "content": "  Hello there.  "}}],
            "usage": {"prompt_tokens": 30, "completion_tokens": 7},
        })

    _mock_client(monkeypatch, handler)

    result = await llm.chat(
        [{"role": "user", "content": "hi", "timestamp": "ignored"}],
        system="Be brief.",
    )

    assert result == llm.LLMResult(content="Hello there.", model="gemini-2.5-flash", input_tokens=30, output_tokens=7)
    assert seen["url"].endswith("/openai/chat/completions")
    assert seen["auth"] == "Bearer gem-key"
    assert b'"role": "system"' in seen["body"] or b'"role":"system"' in seen["body"]
    assert b"timestamp" not in seen["body"]


async def test_client_error_is_not_retried(monkeypatch: pytest.MonkeyPatch, gemini_key):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": "bad request"})

    _mock_client(monkeypatch, handler)

    with pytest.raises(httpx.HTTPStatusError):
        await llm.chat([{"role": "user", "content": "hi"}])
    assert len(calls) == 1


async def test_server_error_is_retried(monkeypatch: pytest.MonkeyPatch, gemini_key):
    responses = [
        httpx.Response(503, headers={"retry-after": "0"}),
        httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}),
    ]

    _mock_client(monkeypatch, lambda request: responses.pop(0))

    result = await llm.chat([{"role": "user", "content": "hi"}])
    assert result.content == "ok"
    assert result.input_tokens == 0
    assert responses == []
