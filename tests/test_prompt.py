from __future__ import annotations

from apexclaw.prompt import build_system_prompt
from apexclaw.tools.base import Tool, ToolArg
from apexclaw.tools.registry import ToolRegistry


class LookupTool(Tool):
    name = "lookup"
    description = "Look something up."
    args = (
        ToolArg("query", "What to look up", required=True),
        ToolArg("limit", "Max results"),
    )

    async def run(self, args: dict[str, str]) -> str:
        return ""


def _registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(LookupTool())
    return registry


def test_prompt_lists_tools_with_required_markers():
    prompt = build_system_prompt(_registry())

    assert "• lookup: Look something up.\n" in prompt
    assert "    query*: What to look up\n" in prompt
    assert "    limit: Max results\n" in prompt
    assert 'Example: <tool_call>web_search query="weather in Kochi" /></tool_call>' in prompt


def test_prompt_describes_call_grammar():
    prompt = build_system_prompt(_registry())
    assert '<tool_call>tool_name param="value" /></tool_call>' in prompt


def test_telegram_and_web_formatting_differ():
    telegram = build_system_prompt(_registry())
    web = build_system_prompt(_registry(), is_web=True)

    assert "Telegram HTML ONLY" in telegram
    assert "[TG Context: ...]" in telegram
    assert "standard Markdown" in web
    assert "Telegram HTML ONLY" not in web


def test_prompt_without_tools_has_no_catalog():
    prompt = build_system_prompt(ToolRegistry())
    assert "## Tools" not in prompt
    assert "Example:" not in prompt
