"""Core agent loop: alternates model completions with tool executions."""

from __future__ import annotations

import asyncio
import logging
import re
import threading
from collections.abc import Callable, Coroutine, Sequence
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from apexclaw.llm.base import LLMClient
from apexclaw.models import Attachment, ChatMessage
from apexclaw.prompt import build_system_prompt
from apexclaw.tool_call import ToolCall, is_tool_error, parse_tool_call
from apexclaw.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from apexclaw.progress import ProgressSink

LOGGER = logging.getLogger(__name__)

MAX_ITERATIONS = 10
MAX_HISTORY = 60
DEEP_WORK_CEILING = 50
MAX_ITERATIONS_MARKER = "[MAX_ITERATIONS]"
MAX_ITERATIONS_MESSAGE = "Max iterations reached."

IST = timezone(timedelta(hours=5, minutes=30), "IST")

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)

_CONTINUE_SUFFIX = "Please continue."
_RETRY_SUFFIX = "That approach failed. Try a different method or correct the arguments and retry."
_EXPLAIN_LIMIT_PROMPT = (
    "You've reached the iteration limit. Briefly explain (1-2 sentences) why you couldn't "
    "complete this task and what the main blocker was."
)

ChunkCallback = Callable[[str], None]


class AgentError(Exception):
    """A run failed for a reason other than its deadline (e.g. the model call)."""


def ist_now() -> datetime:
    return datetime.now(IST)


def timestamped(text: str, now: datetime | None = None) -> str:
    """Prefix ``text`` with the current IST time so the model can reason about dates."""

    current = (now or ist_now()).astimezone(IST)
    header = f"[Current time: {current.strftime('%Y-%m-%d %H:%M:%S %a')} (IST, UTC+05:30)]\n"
    return header + text


def clean_reply(text: str) -> str:
    """Strip ``<think>`` spans and surrounding whitespace, keep everything else."""

    while True:
        stripped = _THINK_RE.sub("", text)
        if stripped == text:
            return stripped.strip()
        text = stripped


def split_max_iterations(reply: str) -> tuple[bool, str]:
    """Separate the iteration-limit marker from the text meant for the user."""

    if reply.startswith(MAX_ITERATIONS_MARKER):
        return True, reply[len(MAX_ITERATIONS_MARKER):].strip()
    return False, reply


class AgentSession:
    """Conversation state for one user plus the bounded tool loop that drives it.

    ``run*`` calls on one session never interleave. The history lock is only
    held around individual appends and snapshots, so ``reset`` and
    ``history_len`` may observe a run in progress.
    """

    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        model_id: str,
        owner_id: str,
        *,
        max_iterations: int = MAX_ITERATIONS,
        max_history: int = MAX_HISTORY,
        is_web: bool = False,
        progress: ProgressSink | None = None,
        blocks_context_grace_seconds: float = 90.0,
        clock: Callable[[], datetime] = ist_now,
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._model_id = model_id
        self._owner_id = owner_id
        self._max_iterations = max_iterations
        self._max_history = max_history
        self._is_web = is_web
        self._progress = progress
        self._grace_seconds = blocks_context_grace_seconds
        self._clock = clock

        self._run_lock = asyncio.Lock()
        self._history_lock = threading.Lock()
        self._history: list[ChatMessage] = [self._system_message()]
        self._deep_work_budget = 0
        self._deep_work_plan = ""
        self.stream_callback: ChunkCallback | None = None

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def progress(self) -> ProgressSink | None:
        """Sink for live progress messages; None for sessions nobody is watching."""
        return self._progress

    @property
    def deep_work_plan(self) -> str:
        return self._deep_work_plan

    @property
    def history(self) -> list[ChatMessage]:
        return self._snapshot()

    def history_len(self) -> int:
        with self._history_lock:
            return len(self._history)

    def reset(self) -> None:
        with self._history_lock:
            self._history = [self._system_message()]
        LOGGER.info("Session reset")

    def set_deep_work(self, max_steps: int, plan: str) -> None:
        """Raise the iteration budget for the current (or next) run."""

        self._deep_work_budget = max(1, min(max_steps, DEEP_WORK_CEILING))
        self._deep_work_plan = plan

    async def run(self, sender_id: str, user_text: str, *, timeout: float | None = None) -> str:
        return await self.run_stream(sender_id, user_text, None, timeout=timeout)

    async def run_stream(
        self,
        sender_id: str,
        user_text: str,
        on_chunk: ChunkCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> str:
        """Run the loop and hand the final reply to ``on_chunk`` once it is known.

        Raises:
            AgentError: the model call failed for a reason other than the deadline.
        """
        return await self._run(sender_id, user_text, (), on_chunk, timeout)

    async def run_stream_with_files(
        self,
        sender_id: str,
        user_text: str,
        files: Sequence[Attachment],
        on_chunk: ChunkCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> str:
        """Same as run_stream, with ``files`` sent alongside the first model call only."""

        return await self._run(sender_id, user_text, tuple(files), on_chunk, timeout)

    async def _run(
        self,
        sender_id: str,
        user_text: str,
        files: tuple[Attachment, ...],
        on_chunk: ChunkCallback | None,
        timeout: float | None,
    ) -> str:
        async with self._run_lock:
            self.stream_callback = on_chunk
            try:
                return await self._loop(sender_id, user_text, files, on_chunk, timeout)
            finally:
                self.stream_callback = None
                self._deep_work_budget = 0
                self._deep_work_plan = ""
                with self._history_lock:
                    self._trim()

    async def _loop(
        self,
        sender_id: str,
        user_text: str,
        files: tuple[Attachment, ...],
        on_chunk: ChunkCallback | None,
        timeout: float | None,
    ) -> str:
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        self._append(ChatMessage("user", timestamped(user_text, self._clock())))
        tool_errors: list[str] = []

        iteration = 0
        while iteration < self._iteration_budget():
            iteration += 1
            snapshot = self._snapshot()
            try:
                reply = await self._send(snapshot, files if iteration == 1 else (), deadline)
            except TimeoutError:
                LOGGER.warning("Deadline exceeded for %s at iteration %d", sender_id, iteration)
                message = f"[Timeout at iteration {iteration}]"
                _emit(on_chunk, message)
                return message
            except Exception as exc:  # noqa: BLE001
                raise AgentError(f"model: {exc}") from exc

            call = parse_tool_call(reply)
            if call is None:
                cleaned = clean_reply(reply)
                self._append(ChatMessage("assistant", cleaned))
                _emit(on_chunk, cleaned)
                return cleaned

            LOGGER.info("tool=%s args=%s iteration=%d", call.name, call.args_json, iteration)
            self._append(ChatMessage("assistant", reply))
            await self._auto_progress(sender_id, call, "running")
            _emit(on_chunk, f"__TOOL_CALL:{call.name}__\n")
            result = await self._execute_tool(call, sender_id)
            _emit(on_chunk, f"__TOOL_RESULT:{call.name}__\n")
            LOGGER.info("tool=%s result_len=%d", call.name, len(result))

            if is_tool_error(result):
                await self._auto_progress(sender_id, call, "failure")
                tool_errors.append(f"{call.name}: {result}")
                suffix = _RETRY_SUFFIX
            else:
                suffix = _CONTINUE_SUFFIX
            self._append(ChatMessage("user", f"[Tool result: {call.name}]\n{result}\n\n{suffix}"))

            tool = self._registry.get(call.name)
            if tool is not None and tool.blocks_context and deadline is not None and loop.time() >= deadline:
                LOGGER.info("Tool %s outlived the deadline, granting %.0fs", call.name, self._grace_seconds)
                deadline = loop.time() + self._grace_seconds

        return await self._explain_exhaustion(sender_id, tool_errors, deadline)

    async def _explain_exhaustion(self, sender_id: str, tool_errors: list[str], deadline: float | None) -> str:
        LOGGER.warning("Iteration budget exhausted for %s", sender_id)
        self._append(ChatMessage("user", _EXPLAIN_LIMIT_PROMPT))
        try:
            explanation = clean_reply(await self._send(self._snapshot(), (), deadline))
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Could not get an explanation after the iteration limit: %s", exc)
            explanation = ""

        if explanation and parse_tool_call(explanation) is None:
            self._append(ChatMessage("assistant", explanation))
            return f"{MAX_ITERATIONS_MARKER}\n{explanation}"

        message = f"{MAX_ITERATIONS_MARKER}\n{MAX_ITERATIONS_MESSAGE}"
        if tool_errors:
            message += "\n\nErrors encountered:\n" + "\n".join(tool_errors)
        return message

    async def _send(
        self,
        history: list[ChatMessage],
        files: tuple[Attachment, ...],
        deadline: float | None,
    ) -> str:
        if files:
            request = self._llm.send_with_files(self._model_id, history, files)
        else:
            request = self._llm.send(self._model_id, history)
        return await _with_deadline(request, deadline)

    async def _execute_tool(self, call: ToolCall, sender_id: str) -> str:
        tool = self._registry.get(call.name)
        if tool is None:
            available = ", ".join(sorted(self._registry.names()))
            return f'unknown tool "{call.name}". Available: {available}'
        if tool.secure and sender_id not in (self._owner_id, f"web_{self._owner_id}"):
            LOGGER.warning("Access denied: user %r tried secure tool %r", sender_id, call.name)
            return f'Access denied: tool "{call.name}" is restricted to the bot owner.'
        try:
            return await self._registry.execute(call.name, call.arguments, sender_id, self)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Tool %s raised", call.name)
            return f"Error: tool {call.name} failed: {exc}"

    async def _auto_progress(self, sender_id: str, call: ToolCall, state: str) -> None:
        if self._progress is None:
            return
        await self._progress.auto_progress(sender_id, call.name, call.arguments, state, self.stream_callback)

    def _iteration_budget(self) -> int:
        return self._deep_work_budget or self._max_iterations

    def _system_message(self) -> ChatMessage:
        return ChatMessage("system", build_system_prompt(self._registry, self._is_web))

    def _append(self, message: ChatMessage) -> None:
        with self._history_lock:
            self._history.append(message)

    def _snapshot(self) -> list[ChatMessage]:
        with self._history_lock:
            return list(self._history)

    def _trim(self) -> None:
        # Caller holds the history lock.
        if len(self._history) <= self._max_history:
            return
        keep = self._history[len(self._history) - (self._max_history - 1):]
        self._history = [self._history[0], *keep]


async def _with_deadline(request: Coroutine[Any, Any, str], deadline: float | None) -> str:
    if deadline is None:
        return await request
    remaining = deadline - asyncio.get_running_loop().time()
    if remaining <= 0:
        request.close()
        raise TimeoutError("deadline exceeded")
    return await asyncio.wait_for(request, remaining)


def _emit(on_chunk: ChunkCallback | None, chunk: str) -> None:
    if on_chunk is not None:
        on_chunk(chunk)
