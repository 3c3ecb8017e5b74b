"""OpenRouter implementation of LLMClient."""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import httpx

from apexclaw.config import Settings
from apexclaw.llm.base import LLMClient
from apexclaw.models import Attachment, ChatMessage

_LOGGER = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_BACKOFF_SECONDS = [5, 15, 45]
_MAX_INLINE_TEXT_CHARS = 20_000


class OpenRouterClient(LLMClient):
    """LLM client using OpenRouter's OpenAI-compatible chat endpoint."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    async def send(self, model_id: str, history: Sequence[ChatMessage]) -> str:
        return await self._complete(model_id, [m.to_dict() for m in history])

    async def send_with_files(
        self,
        model_id: str,
        history: Sequence[ChatMessage],
        files: Sequence[Attachment],
    ) -> str:
        messages: list[dict[str, Any]] = [m.to_dict() for m in history]
        if files:
            for index in range(len(messages) - 1, -1, -1):
                if messages[index]["role"] == "user":
                    parts = await asyncio.to_thread(_file_parts, files)
                    messages[index] = {
                        "role": "user",
                        "content": [{"type": "text", "text": messages[index]["content"]}, *parts],
                    }
                    break
        return await self._complete(model_id, messages)

    async def _complete(self, model_id: str, messages: list[dict[str, Any]]) -> str:
        payload: dict[str, Any] = {"model": model_id, "messages": messages}

        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.openrouter_base_url,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                for attempt in range(_MAX_RETRIES + 1):
                    response = await client.post(
                        "/chat/completions",
                        headers={
                            "Authorization": f"Bearer {self._settings.openrouter_api_key}",
                            "Content-Type": "application/json",
                        },
                        json=payload,
                    )
                    if response.status_code == 429 and attempt < _MAX_RETRIES:
                        wait = _RETRY_BACKOFF_SECONDS[attempt]
                        _LOGGER.warning(
                            "OpenRouter rate limited (429), retrying in %ds (attempt %d/%d)",
                            wait,
                            attempt + 1,
                            _MAX_RETRIES,
                        )
                        await asyncio.sleep(wait)
                        continue
                    response.raise_for_status()
                    break
                data = response.json()
        except httpx.TimeoutException as exc:
            raise TimeoutError(f"OpenRouter request timed out: {exc}") from exc

        choice = data["choices"][0]["message"]
        finish_reason = data["choices"][0].get("finish_reason")
        content = choice.get("content") or ""
        _LOGGER.info(
            "LLM response: model=%s finish_reason=%r content=%r",
            model_id,
            finish_reason,
            content[:200],
        )
        return content


def _file_parts(files: Sequence[Attachment]) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    for attachment in files:
        path = Path(attachment.path)
        name = attachment.filename or path.name
        if attachment.content_type.startswith("image/"):
            encoded = base64.b64encode(path.read_bytes()).decode("ascii")
            parts.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{attachment.content_type};base64,{encoded}"},
                }
            )
        else:
            text = path.read_text(encoding="utf-8", errors="replace")[:_MAX_INLINE_TEXT_CHARS]
            parts.append({"type": "text", "text": f"[File: {name}]\n{text}"})
    return parts
