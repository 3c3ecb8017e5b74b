"""DuckDuckGo web search tool."""

from __future__ import annotations

import asyncio

from ddgs import DDGS

from apexclaw.tools.base import Tool, ToolArg

_DEFAULT_LIMIT = 5
_MAX_LIMIT = 20


class WebSearchTool(Tool):
    """Search the web using DuckDuckGo (no API key required)."""

    name = "web_search"
    description = (
        "Search the web. Returns titles, URLs, and snippets. Use for anything current: "
        "news, prices, weather, scores, documentation."
    )
    args = (
        ToolArg("query", "The search query.", True),
        ToolArg("limit", f"Max results to return (default {_DEFAULT_LIMIT}, max {_MAX_LIMIT})."),
    )
    blocks_context = True

    async def run(self, args: dict[str, str]) -> str:
        query = args.get("query", "").strip()
        if not query:
            return "Error: query is required"
        try:
            limit = min(int(args.get("limit") or _DEFAULT_LIMIT), _MAX_LIMIT)
        except ValueError:
            limit = _DEFAULT_LIMIT

        results = await asyncio.to_thread(
            lambda: DDGS().text(query, max_results=limit, backend="duckduckgo")
        )

        if not results:
            return "No results found."

        entries = [f"<b>{r['title']}</b>\n{r['href']}\n{r['body']}" for r in results]
        header = f"Search results for: {query}\n\n"
        return header + "\n\n---\n\n".join(entries)
