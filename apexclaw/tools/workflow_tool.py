"""Tools for long multi-step tasks: deep work mode and live progress."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apexclaw.agent_session import DEEP_WORK_CEILING
from apexclaw.progress import PROGRESS_STATES
from apexclaw.tools.base import SessionTool, ToolArg

if TYPE_CHECKING:
    from apexclaw.agent_session import AgentSession

LOGGER = logging.getLogger(__name__)

_DEFAULT_DEEP_WORK_STEPS = 30
_MIN_DEEP_WORK_STEPS = 5


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except (AttributeError, ValueError):
        return default


class DeepWorkTool(SessionTool):
    """Raise the calling session's iteration budget for a long task."""

    name = "deep_work"
    description = (
        "Enter deep work mode for complex multi-step tasks. Raises the iteration limit to allow "
        f"extended execution (up to {DEEP_WORK_CEILING} steps). Call this FIRST when a task needs "
        "many sequential tool calls."
    )
    args = (
        ToolArg("plan", "Brief plan of steps you will execute (helps track progress)", True),
        ToolArg("max_steps", f"Estimated tool calls needed (default: 30, max: {DEEP_WORK_CEILING})"),
    )

    async def run_in_session(self, args: dict[str, str], sender_id: str, session: AgentSession) -> str:
        plan = args.get("plan", "").strip()
        if not plan:
            return "Error: plan is required"
        max_steps = _parse_int(args.get("max_steps", ""), _DEFAULT_DEEP_WORK_STEPS)
        max_steps = max(_MIN_DEEP_WORK_STEPS, min(max_steps, DEEP_WORK_CEILING))

        session.set_deep_work(max_steps, plan)
        LOGGER.info("Deep work activated for %s: max_steps=%d plan=%r", sender_id, max_steps, plan)
        return (
            f"Deep work activated! Plan: {plan}\nMax steps: {max_steps}\n"
            "You now have extended iterations. Proceed with your plan."
        )


class ProgressTool(SessionTool):
    """Report progress of a multi-step task to the user."""

    name = "progress"
    description = (
        "Report progress on a multi-step task. States: 'running', 'success', 'failure', "
        "'retry'. Updates the user's live status message."
    )
    args = (
        ToolArg("message", "Main status message (e.g. 'Installing dependencies')", True),
        ToolArg("percent", "Completion percentage 0-100"),
        ToolArg("state", "running | success | failure | retry (default: running)"),
        ToolArg("detail", "Detailed output or error message"),
    )

    async def run_in_session(self, args: dict[str, str], sender_id: str, session: AgentSession) -> str:
        message = args.get("message", "").strip()
        if not message:
            return "Error: message is required"
        percent = max(0, min(_parse_int(args.get("percent", ""), 0), 100))
        state = args.get("state", "").strip() or "running"
        if state not in PROGRESS_STATES:
            state = "running"
        detail = args.get("detail", "")

        sink = session.progress
        if sink is None:
            LOGGER.debug("Progress %s [%d%%] %s not published: session has no sink", sender_id, percent, message)
            return ""
        message_id = await sink.send_progress(
            sender_id, percent, message, state, detail, stream_callback=session.stream_callback
        )
        LOGGER.info("Progress %s [%d%%] %s (state=%s, msg=%s)", sender_id, percent, message, state, message_id)
        return ""
