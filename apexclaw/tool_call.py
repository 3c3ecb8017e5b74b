"""Extraction of the single tool call a model turn may contain.

The model invokes a tool by emitting, anywhere in its reply::

    <tool_call>name key="value" other="value" /></tool_call>

The closing ``</tool_call>`` alone is accepted as terminator too. Only the
first call in a reply is honoured.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

# Quoted values are consumed whole so a "/>" inside a value cannot end the call.
_TOOL_CALL_RE = re.compile(r'<tool_call>((?:"[^"]*"|[^"])*?)(?:/>|</tool_call>)', re.DOTALL)
# Unbalanced quotes: end at the first terminator.
_LOOSE_TOOL_CALL_RE = re.compile(r"<tool_call>(.*?)(?:/>|</tool_call>)", re.DOTALL)
_ATTR_RE = re.compile(r'(\w+)="([^"]*)"')
_NAME_RE = re.compile(r"^[A-Za-z_]\w*$")

_MAX_INNER_LENGTH = 10_000
_MAX_NAME_LENGTH = 100
_MAX_ATTRS = 50
_MAX_KEY_LENGTH = 100
_MAX_VALUE_LENGTH = 100_000


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation parsed out of free-form model output."""

    name: str
    arguments: dict[str, str]

    @property
    def args_json(self) -> str:
        return json.dumps(self.arguments)


def parse_tool_call(text: str) -> ToolCall | None:
    """Return the first well-formed tool call in ``text``, or None."""

    match = _TOOL_CALL_RE.search(text) or _LOOSE_TOOL_CALL_RE.search(text)
    if match is None:
        return None
    return _parse_inner(match.group(1))


def _parse_inner(raw: str) -> ToolCall | None:
    inner = raw.strip()
    if not inner or len(inner) > _MAX_INNER_LENGTH:
        return None
    parts = inner.split(maxsplit=1)
    name = parts[0]
    if len(name) > _MAX_NAME_LENGTH or not _NAME_RE.match(name):
        return None

    arguments: dict[str, str] = {}
    if len(parts) > 1:
        for key, value in _ATTR_RE.findall(parts[1]):
            if len(key) > _MAX_KEY_LENGTH or len(value) > _MAX_VALUE_LENGTH:
                continue
            arguments[key] = value
    if len(arguments) > _MAX_ATTRS:
        return None
    return ToolCall(name=name, arguments=arguments)


def format_tool_call(name: str, arguments: dict[str, str]) -> str:
    """Render a call in the canonical self-closing form understood by parse_tool_call."""

    if not _NAME_RE.match(name):
        raise ValueError(f"invalid tool name {name!r}")
    attrs = []
    for key, value in arguments.items():
        if '"' in value:
            raise ValueError(f"argument {key!r} contains a double quote")
        attrs.append(f'{key}="{value}"')
    body = " ".join([name, *attrs])
    return f"<tool_call>{body} /></tool_call>"


def is_tool_error(result: str) -> bool:
    """Whether a tool result should be reported back to the model as a failure."""

    normalized = result.strip().lower()
    return (
        normalized.startswith("error:")
        or normalized.startswith('{"error"')
        or "unknown tool" in normalized
    )
