from __future__ import annotations

import base64
import json

import httpx
import pytest

from apexclaw.config import Settings
from apexclaw.llm.openrouter import OpenRouterClient
from apexclaw.models import Attachment, ChatMessage

HISTORY = [ChatMessage("system", "You are ApexClaw."), ChatMessage("user", "hi")]


def _settings() -> Settings:
    return Settings(OPENROUTER_API_KEY="sk-test", TELEGRAM_BOT_TOKEN="t", OWNER_ID="42")


def _reply(content: str | None) -> httpx.Response:
    return httpx.Response(
        200,
        json={"choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}]},
    )


@pytest.mark.asyncio
async def test_send_posts_history_and_returns_content():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _reply("Hello!")

    client = OpenRouterClient(_settings(), transport=httpx.MockTransport(handler))
    reply = await client.send("z-ai/glm-4.7", HISTORY)

    assert reply == "Hello!"
    request = seen[0]
    assert request.url.path.endswith("/chat/completions")
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "z-ai/glm-4.7"
    assert body["messages"] == [
        {"role": "system", "content": "You are ApexClaw."},
        {"role": "user", "content": "hi"},
    ]


@pytest.mark.asyncio
async def test_null_content_becomes_empty_string():
    client = OpenRouterClient(_settings(), transport=httpx.MockTransport(lambda request: _reply(None)))
    assert await client.send("m", HISTORY) == ""


@pytest.mark.asyncio
async def test_rate_limit_is_retried(monkeypatch):
    monkeypatch.setattr("apexclaw.llm.openrouter._RETRY_BACKOFF_SECONDS", [0, 0, 0])
    responses = [httpx.Response(429), httpx.Response(429), _reply("finally")]

    client = OpenRouterClient(_settings(), transport=httpx.MockTransport(lambda request: responses.pop(0)))

    assert await client.send("m", HISTORY) == "finally"
    assert responses == []


@pytest.mark.asyncio
async def test_server_error_raises():
    client = OpenRouterClient(_settings(), transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    with pytest.raises(httpx.HTTPStatusError):
        await client.send("m", HISTORY)


@pytest.mark.asyncio
async def test_timeout_is_mapped_to_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = OpenRouterClient(_settings(), transport=httpx.MockTransport(handler))
    with pytest.raises(TimeoutError):
        await client.send("m", HISTORY)


@pytest.mark.asyncio
async def test_files_attach_to_last_user_message(tmp_path):
    image = tmp_path / "photo.png"
    image.write_bytes(b"\x89PNG")
    notes = tmp_path / "notes.txt"
    notes.write_text("buy milk")
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return _reply("A photo and a list.")

    client = OpenRouterClient(_settings(), transport=httpx.MockTransport(handler))
    reply = await client.send_with_files(
        "m",
        HISTORY,
        [Attachment(str(image), "image/png"), Attachment(str(notes), "text/plain")],
    )

    assert reply == "A photo and a list."
    messages = seen[0]["messages"]
    assert messages[0] == {"role": "system", "content": "You are ApexClaw."}
    parts = messages[1]["content"]
    assert parts[0] == {"type": "text", "text": "hi"}
    encoded = base64.b64encode(b"\x89PNG").decode("ascii")
    assert parts[1] == {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}}
    assert parts[2] == {"type": "text", "text": "[File: notes.txt]\nbuy milk"}
