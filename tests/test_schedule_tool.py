from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from apexclaw.agent_session import IST
from apexclaw.context_store import ContextStore, MessageContext
from apexclaw.heartbeat import HeartbeatScheduler
from apexclaw.tools.schedule_tool import CancelTaskTool, ListTasksTool, ScheduleTaskTool

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=IST)


def _scheduler(tmp_path) -> HeartbeatScheduler:  # noqa: ANN001
    return HeartbeatScheduler(
        tmp_path / "heartbeat.json",
        MagicMock(),
        MagicMock(),
        "owner",
        clock=lambda: NOW.astimezone(timezone.utc),
    )


def _tool(scheduler: HeartbeatScheduler, contexts: ContextStore | None = None) -> ScheduleTaskTool:
    return ScheduleTaskTool(scheduler, contexts or ContextStore(), clock=lambda: NOW)


@pytest.mark.asyncio
async def test_schedules_task_with_origin_context(tmp_path):
    scheduler = _scheduler(tmp_path)
    contexts = ContextStore()
    contexts.set(
        "42",
        MessageContext(telegram_id=-100, sender_id="42", owner_id="42", message_id=77, group_id=-100),
    )

    result = await _tool(scheduler, contexts).run_with_context(
        {
            "label": "morning_briefing",
            "prompt": "Check weather in Kochi and summarize",
            "run_at": "2026-03-02T08:00:00+05:30",
            "repeat": "daily",
        },
        "42",
    )

    assert result == "Task 'morning_briefing' scheduled for 2026-03-02T08:00:00+05:30 (repeat: daily)"
    [task] = scheduler.tasks()
    assert task.owner_id == "42"
    assert task.telegram_id == -100
    assert task.message_id == 77
    assert task.group_id == -100
    assert task.repeat == "daily"


@pytest.mark.asyncio
async def test_repeat_defaults_to_once(tmp_path):
    scheduler = _scheduler(tmp_path)

    result = await _tool(scheduler).run_with_context(
        {"label": "r", "prompt": "p", "run_at": "2026-03-01T12:30:00+05:30", "repeat": "once"},
        "42",
    )

    assert result.endswith("(repeat: once)")
    assert scheduler.tasks()[0].repeat == ""


@pytest.mark.parametrize(
    "args",
    [
        {"prompt": "p", "run_at": "2026-03-02T08:00:00+05:30"},
        {"label": "x", "run_at": "2026-03-02T08:00:00+05:30"},
        {"label": "x", "prompt": "p"},
        {"label": "  ", "prompt": "p", "run_at": "2026-03-02T08:00:00+05:30"},
    ],
)
@pytest.mark.asyncio
async def test_required_fields(tmp_path, args):
    scheduler = _scheduler(tmp_path)
    result = await _tool(scheduler).run_with_context(args, "42")
    assert result == "Error: label, prompt, and run_at are required"
    assert scheduler.tasks() == []


@pytest.mark.parametrize("run_at", ["tomorrow 8am", "2026-03-02T08:00:00"])
@pytest.mark.asyncio
async def test_rejects_malformed_run_at(tmp_path, run_at):
    result = await _tool(_scheduler(tmp_path)).run_with_context({"label": "x", "prompt": "p", "run_at": run_at}, "42")
    assert result.startswith("Error: run_at must be in RFC3339 format")


@pytest.mark.parametrize("run_at", ["2026-03-01T11:59:00+05:30", "2026-03-01T12:00:00+05:30"])
@pytest.mark.asyncio
async def test_rejects_past_run_at(tmp_path, run_at):
    scheduler = _scheduler(tmp_path)
    result = await _tool(scheduler).run_with_context({"label": "x", "prompt": "p", "run_at": run_at}, "42")
    assert result.startswith(f"Error: run_at '{run_at}' is in the past.")
    assert "Current time is 2026-03-01T12:00:00+05:30" in result
    assert scheduler.tasks() == []


@pytest.mark.asyncio
async def test_plain_run_requires_context(tmp_path):
    result = await _tool(_scheduler(tmp_path)).run({"label": "x"})
    assert result == "Error: schedule_task requires context"


@pytest.mark.asyncio
async def test_cancel_and_list(tmp_path):
    scheduler = _scheduler(tmp_path)
    await _tool(scheduler).run_with_context(
        {"label": "brief", "prompt": "p", "run_at": "2026-03-02T08:00:00+05:30"}, "42"
    )

    listing = await ListTasksTool(scheduler).run({})
    assert "<b>brief</b>" in listing

    assert await CancelTaskTool(scheduler).run({"label": "brief"}) == "Task 'brief' cancelled."
    assert await CancelTaskTool(scheduler).run({"label": "brief"}) == "No task found with label 'brief'."
    assert await CancelTaskTool(scheduler).run({}) == "Error: label is required"
    assert await ListTasksTool(scheduler).run({}) == "No scheduled tasks."
