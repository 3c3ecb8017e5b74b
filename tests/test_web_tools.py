"""Tests for WebSearchTool and WebFetchTool."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from apexclaw.tools.web_fetch_tool import WebFetchTool
from apexclaw.tools.web_search_tool import WebSearchTool

# Patch path must match the import in the module under test
_DDGS_PATH = "apexclaw.tools.web_search_tool.DDGS"


def _ddg_results(*items: tuple[str, str, str]) -> list[dict]:
    return [{"title": t, "href": h, "body": b} for t, h, b in items]


@pytest.mark.asyncio
async def test_search_returns_formatted_results():
    mock_ddgs = MagicMock()
    mock_ddgs.text = MagicMock(
        return_value=_ddg_results(
            ("Result One", "https://one.com", "First body text"),
            ("Result Two", "https://two.com", "Second body text"),
        )
    )

    with patch(_DDGS_PATH, return_value=mock_ddgs):
        result = await WebSearchTool().run({"query": "test query"})

    assert result.startswith("Search results for: test query")
    assert "<b>Result One</b>\nhttps://one.com\nFirst body text" in result
    assert "Result Two" in result
    assert "\n\n---\n\n" in result


@pytest.mark.asyncio
async def test_search_no_results():
    mock_ddgs = MagicMock()
    mock_ddgs.text = MagicMock(return_value=[])

    with patch(_DDGS_PATH, return_value=mock_ddgs):
        result = await WebSearchTool().run({"query": "nothing"})

    assert result == "No results found."


@pytest.mark.asyncio
async def test_search_caps_limit():
    mock_ddgs = MagicMock()
    mock_ddgs.text = MagicMock(return_value=[])

    with patch(_DDGS_PATH, return_value=mock_ddgs):
        await WebSearchTool().run({"query": "test", "limit": "99"})

    assert mock_ddgs.text.call_args.kwargs["max_results"] == 20


@pytest.mark.asyncio
async def test_search_requires_query():
    assert await WebSearchTool().run({}) == "Error: query is required"


def test_web_tools_block_context():
    assert WebSearchTool.blocks_context is True
    assert WebFetchTool.blocks_context is True


@pytest.mark.asyncio
async def test_fetch_returns_markdown():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {"title": "Example Page", "content": "Body text."}})

    tool = WebFetchTool(api_key="secret", transport=httpx.MockTransport(handler))
    result = await tool.run({"url": "https://example.com/page"})

    assert result == "# Example Page\nSource: https://example.com/page\n\nBody text."
    assert seen[0].url.host == "r.jina.ai"
    assert seen[0].url.path.endswith("example.com/page")
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert seen[0].headers["X-Token-Budget"] == "5000"


@pytest.mark.asyncio
async def test_fetch_reports_http_errors():
    tool = WebFetchTool(transport=httpx.MockTransport(lambda request: httpx.Response(404, text="nope")))

    result = await tool.run({"url": "https://example.com/missing"})

    assert result == "Error: failed to read URL (HTTP 404): https://example.com/missing"


@pytest.mark.asyncio
async def test_fetch_rejects_non_http_urls():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result = await WebFetchTool(transport=httpx.MockTransport(handler)).run({"url": "file:///etc/passwd"})

    assert result.startswith("Error: url must start with http:// or https://")


@pytest.mark.asyncio
async def test_fetch_omits_auth_without_key():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=json.dumps({"data": {}}).encode())

    result = await WebFetchTool(transport=httpx.MockTransport(handler)).run(
        {"url": "https://example.com", "max_tokens": "100"}
    )

    assert result.startswith("# Untitled")
    assert "Authorization" not in seen[0].headers
    assert seen[0].headers["X-Token-Budget"] == "100"
