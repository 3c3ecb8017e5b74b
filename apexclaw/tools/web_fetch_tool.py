"""Web page fetching tool backed by the Jina reader proxy."""

from __future__ import annotations

import httpx

from apexclaw.tools.base import Tool, ToolArg

JINA_BASE_URL = "https://r.jina.ai"
_DEFAULT_MAX_TOKENS = 5000


class WebFetchTool(Tool):
    """Fetch a web page and return it as clean markdown."""

    name = "web_fetch"
    description = (
        "Fetch a web page and return its readable content. Use after web_search when you "
        "need the full text of one specific page."
    )
    args = (
        ToolArg("url", "The full URL to read.", True),
        ToolArg("max_tokens", f"Max tokens of content to return (default {_DEFAULT_MAX_TOKENS})."),
    )
    blocks_context = True

    def __init__(self, api_key: str = "", transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = api_key
        self._transport = transport

    async def run(self, args: dict[str, str]) -> str:
        url = args.get("url", "").strip()
        if not url.startswith(("http://", "https://")):
            return f"Error: url must start with http:// or https://, got {url!r}"
        try:
            max_tokens = int(args.get("max_tokens") or _DEFAULT_MAX_TOKENS)
        except ValueError:
            max_tokens = _DEFAULT_MAX_TOKENS

        headers = {
            "Accept": "application/json",
            "X-Retain-Images": "none",
            "X-Remove-Selector": "nav, footer, .sidebar, .ads",
            "X-Token-Budget": str(max_tokens),
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        async with httpx.AsyncClient(transport=self._transport) as client:
            resp = await client.get(f"{JINA_BASE_URL}/{url}", headers=headers, timeout=20.0)
            if resp.status_code != 200:
                return f"Error: failed to read URL (HTTP {resp.status_code}): {url}"
            data = resp.json()

        content = data.get("data", {})
        title = content.get("title", "Untitled")
        body = content.get("content", "")
        return f"# {title}\nSource: {url}\n\n{body}"
