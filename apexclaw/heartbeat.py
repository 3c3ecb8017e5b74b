"""Durable heartbeat scheduler: replays scheduled prompts through fresh agent sessions.

Tasks live in a single JSON array on disk (``~/.apexclaw/heartbeat.json`` by
default). The file is rewritten after every mutation, write-to-temp then
rename. A ticker scans the set every few seconds; due tasks are either
dropped (one-shot) or moved to their next future slot (recurring) before
being fired concurrently.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import threading
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from apexclaw.agent_session import AgentError, AgentSession, split_max_iterations
from apexclaw.messaging import MessagingOps
from apexclaw.models import ScheduledTask

LOGGER = logging.getLogger(__name__)

TICK_SECONDS = 15.0
FIRE_TIMEOUT_SECONDS = 3 * 60.0

_FIXED_INTERVALS = {
    "minutely": timedelta(minutes=1),
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
}
_EVERY_RE = re.compile(r"^every_(\d+)_(minutes?|hours?|days?)$")
_UNIT_INTERVALS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
}

_TASKS_ADAPTER = TypeAdapter(list[ScheduledTask])


def default_heartbeat_path() -> Path:
    return Path.home() / ".apexclaw" / "heartbeat.json"


def normalize_repeat(repeat: str) -> str:
    """Canonical repeat value; ``""`` means one-shot."""

    value = repeat.strip().lower()
    return "" if value == "once" else value


def repeat_interval(repeat: str) -> timedelta:
    """Interval between firings, or zero for one-shot and unrecognised values."""

    value = normalize_repeat(repeat)
    if value in _FIXED_INTERVALS:
        return _FIXED_INTERVALS[value]
    match = _EVERY_RE.match(value)
    if match is None:
        return timedelta(0)
    count = int(match.group(1))
    unit = match.group(2).rstrip("s")
    return count * _UNIT_INTERVALS[unit]


def next_run(run_at: datetime, now: datetime, repeat: str) -> datetime:
    """First ``run_at + k * interval`` (k >= 1) strictly after ``now``.

    Returns ``run_at`` unchanged when ``repeat`` does not recur.
    """
    interval = repeat_interval(repeat)
    if not interval:
        return run_at
    candidate = run_at + interval
    if candidate <= now:
        skipped = (now - candidate) // interval
        candidate += skipped * interval
        while candidate <= now:
            candidate += interval
    return candidate


def parse_run_at(value: str) -> datetime:
    """Parse an RFC3339 timestamp. Naive timestamps are rejected."""

    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        raise ValueError(f"run_at {value!r} has no UTC offset")
    return parsed


def format_run_at(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HeartbeatScheduler:
    """Task set, ticker and firing workers.

    ``session_factory`` must return a fresh session per firing; scheduled
    prompts never run inside a user's interactive session.
    """

    def __init__(
        self,
        path: Path,
        session_factory: Callable[[], AgentSession],
        messaging: MessagingOps | None,
        owner_id: str,
        *,
        tick_seconds: float = TICK_SECONDS,
        fire_timeout_seconds: float = FIRE_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._path = path
        self._session_factory = session_factory
        self._messaging = messaging
        self._owner_id = owner_id
        self._tick_seconds = tick_seconds
        self._fire_timeout_seconds = fire_timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._tasks: list[ScheduledTask] = []
        self._workers: set[asyncio.Task[None]] = set()
        self._stop_event = asyncio.Event()

    @property
    def path(self) -> Path:
        return self._path

    def tasks(self) -> list[ScheduledTask]:
        with self._lock:
            return [replace(task) for task in self._tasks]

    def load(self) -> int:
        """Read the task file, dropping stale one-shot tasks. Returns the number kept."""

        with self._lock:
            self._tasks = self._read_tasks()
            return len(self._tasks)

    def schedule(self, task: ScheduledTask) -> None:
        """Add ``task``, or replace the live task that has the same label.

        Raises:
            ValueError: ``run_at`` is not an RFC3339 timestamp.
        """
        parse_run_at(task.run_at)
        task = replace(
            task,
            id=task.id or uuid.uuid4().hex[:12],
            repeat=normalize_repeat(task.repeat),
            created_at=task.created_at or format_run_at(self._clock()),
            scheduled_at=task.scheduled_at or task.run_at,
        )
        with self._lock:
            for index, existing in enumerate(self._tasks):
                if existing.label == task.label:
                    self._tasks[index] = task
                    self._persist()
                    LOGGER.info("Updated task %r -> run_at=%s", task.label, task.run_at)
                    return
            self._tasks.append(task)
            self._persist()
        LOGGER.info(
            "Added task %r -> run_at=%s owner=%s chat=%d",
            task.label,
            task.run_at,
            task.owner_id,
            task.telegram_id,
        )

    def cancel(self, label_or_id: str) -> bool:
        with self._lock:
            for index, task in enumerate(self._tasks):
                if task.label == label_or_id or task.id == label_or_id:
                    del self._tasks[index]
                    self._persist()
                    LOGGER.info("Cancelled task %r", task.label)
                    return True
        return False

    def list_tasks(self) -> str:
        """Human-readable listing used by the list_tasks tool and /tasks."""

        with self._lock:
            if not self._tasks:
                return "No scheduled tasks."
            lines = []
            for task in self._tasks:
                repeat = task.repeat or "once"
                lines.append(
                    f"• <b>{task.label}</b> - {task.prompt}\n  next: {task.run_at} | repeat: {repeat}"
                )
        return "\n".join(lines)

    def collect_due(self) -> list[ScheduledTask]:
        """Remove or advance every due task and return the batch to fire."""

        now = self._clock()
        due: list[ScheduledTask] = []
        remaining: list[ScheduledTask] = []
        changed = False
        with self._lock:
            for task in self._tasks:
                try:
                    run_at = parse_run_at(task.run_at)
                except ValueError as exc:
                    LOGGER.warning("Bad run_at for task %r: %s, dropping", task.label, exc)
                    changed = True
                    continue
                if run_at > now:
                    remaining.append(task)
                    continue
                due.append(task)
                changed = True
                following = next_run(run_at, now, task.repeat)
                if following > run_at:
                    remaining.append(replace(task, run_at=format_run_at(following)))
            self._tasks = remaining
            if changed:
                self._persist()
        return due

    def tick(self) -> list[ScheduledTask]:
        """Collect due tasks and start one worker per task."""

        due = self.collect_due()
        for task in due:
            worker = asyncio.create_task(self.fire(task), name=f"heartbeat-{task.label}")
            self._workers.add(worker)
            worker.add_done_callback(self._workers.discard)
        return due

    async def fire(self, task: ScheduledTask) -> None:
        """Run one task's prompt in a fresh session and deliver the reply."""

        LOGGER.info("Firing task %r (prompt: %r) -> chat=%d", task.label, task.prompt, task.telegram_id)
        sender_id = task.owner_id or self._owner_id
        session = self._session_factory()
        try:
            reply = await session.run_stream(sender_id, task.prompt, None, timeout=self._fire_timeout_seconds)
        except AgentError as exc:
            LOGGER.warning("Task %r error: %s", task.label, exc)
            return
        except Exception:  # noqa: BLE001
            LOGGER.exception("Task %r failed", task.label)
            return

        _, reply = split_max_iterations(reply)
        if not reply.strip():
            LOGGER.info("Task %r produced empty reply", task.label)
            return
        if self._messaging is None or not task.telegram_id:
            LOGGER.warning("Task %r has no delivery target, dropping reply", task.label)
            return
        try:
            await self._messaging.deliver(task.telegram_id, task.message_id, reply)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Delivery failed for task %r", task.label)

    async def run_forever(self) -> None:
        """Tick until stop() is called."""

        LOGGER.info("Heartbeat scheduler started (%d tasks loaded)", len(self.tasks()))
        while not self._stop_event.is_set():
            await asyncio.sleep(self._tick_seconds)
            if self._stop_event.is_set():
                break
            self.tick()

    async def drain(self) -> None:
        """Wait for in-flight firings to finish."""

        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)

    def stop(self) -> None:
        """Signal the loop to stop and cancel in-flight firings."""

        self._stop_event.set()
        for worker in list(self._workers):
            worker.cancel()

    def _read_tasks(self) -> list[ScheduledTask]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            LOGGER.warning("Could not read %s: %s", self._path, exc)
            return []
        try:
            loaded = _TASKS_ADAPTER.validate_python(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            LOGGER.warning("Ignoring corrupt heartbeat file %s: %s", self._path, exc)
            return []

        now = self._clock()
        kept: list[ScheduledTask] = []
        labels: set[str] = set()
        for task in loaded:
            try:
                run_at = parse_run_at(task.run_at)
            except ValueError:
                LOGGER.warning("Dropping task %r with bad run_at %r", task.label, task.run_at)
                continue
            if not repeat_interval(task.repeat) and run_at <= now:
                LOGGER.info("Dropping stale one-shot task %r (was due %s)", task.label, task.run_at)
                continue
            if task.label in labels:
                continue
            labels.add(task.label)
            kept.append(task)
        return kept

    def _persist(self) -> None:
        # Caller holds the lock.
        data = json.dumps([task.to_dict() for task in self._tasks], indent=2, ensure_ascii=False)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(data, encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            LOGGER.warning("Could not persist heartbeat tasks to %s: %s", self._path, exc)
