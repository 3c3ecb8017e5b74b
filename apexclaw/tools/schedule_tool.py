"""Tools exposing the heartbeat scheduler to the model."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from apexclaw.agent_session import IST, ist_now
from apexclaw.context_store import ContextStore
from apexclaw.heartbeat import HeartbeatScheduler, normalize_repeat, parse_run_at
from apexclaw.models import ScheduledTask
from apexclaw.tools.base import ContextualTool, Tool, ToolArg

LOGGER = logging.getLogger(__name__)


class ScheduleTaskTool(ContextualTool):
    """Schedule a prompt to be run later and delivered to the current chat."""

    name = "schedule_task"
    description = (
        "Schedule a proactive task: the bot will run the given prompt at the specified time "
        "and send you the response automatically. Great for reminders, monitoring, periodic "
        "summaries."
    )
    args = (
        ToolArg("label", "Short human-readable name for this task (e.g. 'morning_briefing')", True),
        ToolArg(
            "prompt",
            "The instruction to run at the scheduled time (e.g. 'Check weather in Kochi and summarize')",
            True,
        ),
        ToolArg("run_at", "When to first run, RFC3339 (e.g. '2026-02-25T08:00:00+05:30')", True),
        ToolArg(
            "repeat",
            "'once', 'minutely', 'hourly', 'daily', 'weekly', or 'every_N_minutes' / "
            "'every_N_hours' / 'every_N_days'. Default: 'once'",
        ),
    )

    def __init__(
        self,
        scheduler: HeartbeatScheduler,
        contexts: ContextStore,
        clock: Callable[[], datetime] = ist_now,
    ) -> None:
        self._scheduler = scheduler
        self._contexts = contexts
        self._clock = clock

    async def run_with_context(self, args: dict[str, str], sender_id: str) -> str:
        label = args.get("label", "").strip()
        prompt = args.get("prompt", "").strip()
        run_at = args.get("run_at", "").strip()
        repeat = normalize_repeat(args.get("repeat", ""))
        if not label or not prompt or not run_at:
            return "Error: label, prompt, and run_at are required"

        try:
            when = parse_run_at(run_at)
        except ValueError:
            return (
                "Error: run_at must be in RFC3339 format (e.g. 2026-02-25T08:00:00+05:30). "
                f"Got: {run_at!r}"
            )
        now = self._clock()
        if when <= now:
            return (
                f"Error: run_at {run_at!r} is in the past. Current time is "
                f"{now.astimezone(IST).isoformat(timespec='seconds')}. "
                "Recalculate and use a future timestamp."
            )

        task = ScheduledTask(label=label, prompt=prompt, run_at=run_at, repeat=repeat)
        context = self._contexts.get(sender_id)
        if context is not None:
            task.owner_id = context.owner_id
            task.telegram_id = context.telegram_id
            task.message_id = context.message_id
            task.group_id = context.group_id or 0
        self._scheduler.schedule(task)
        return f"Task {label!r} scheduled for {run_at} (repeat: {repeat or 'once'})"


class CancelTaskTool(Tool):
    """Cancel a scheduled task."""

    name = "cancel_task"
    description = "Cancel a previously scheduled task by its label name."
    args = (ToolArg("label", "The label of the task to cancel", True),)

    def __init__(self, scheduler: HeartbeatScheduler) -> None:
        self._scheduler = scheduler

    async def run(self, args: dict[str, str]) -> str:
        label = args.get("label", "").strip()
        if not label:
            return "Error: label is required"
        if self._scheduler.cancel(label):
            return f"Task {label!r} cancelled."
        return f"No task found with label {label!r}."


class ListTasksTool(Tool):
    """List scheduled tasks."""

    name = "list_tasks"
    description = "List all currently scheduled heartbeat tasks."

    def __init__(self, scheduler: HeartbeatScheduler) -> None:
        self._scheduler = scheduler

    async def run(self, args: dict[str, str]) -> str:
        return self._scheduler.list_tasks()
