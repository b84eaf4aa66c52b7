"""Drives one turn against the remote assistant.

A turn walks through::

    append message ─► create run ─► poll ─┬─► completed ─► read reply
                                          ├─► requires_action ─► run tools ─► submit ─► poll ...
                                          └─► failed / cancelled / expired / incomplete

Polling is a plain synchronous loop with two budgets: the first wait is
bounded by ``RUN_INITIAL_TIMEOUT_SECONDS`` and every wait after a tool
submission by the longer ``RUN_TOOL_TIMEOUT_SECONDS``.

If the thread still has an active run when the message is appended, the
active runs are cancelled and the append retried once after a short
grace period.  When that does not work the thread is abandoned for a new
one, so every turn gets its message in.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from openai import BadRequestError, OpenAI, OpenAIError

from voice_calendar.config import (
    MAX_TOOL_ROUNDS,
    RUN_CANCEL_GRACE_SECONDS,
    RUN_INITIAL_TIMEOUT_SECONDS,
    RUN_POLL_INTERVAL_SECONDS,
    RUN_TOOL_TIMEOUT_SECONDS,
)
from voice_calendar.assistant.session import AssistantSessionManager, ThreadResolution
from voice_calendar.errors import RunFailed, RunTimedOut, SessionUnavailable
from voice_calendar.services.metrics import metrics
from voice_calendar.tools.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

MAX_PARALLEL_TOOL_CALLS = 8


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"

    @classmethod
    def parse(cls, value: str) -> RunStatus:
        try:
            return cls(value)
        except ValueError:
            logger.warning("Unrecognised run status %r, treating as failed", value)
            return cls.FAILED

    @property
    def is_pending(self) -> bool:
        """Still moving on its own; keep polling."""
        return self in (RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.CANCELLING)

    @property
    def blocks_thread(self) -> bool:
        """A run in this state prevents new messages on its thread."""
        return self in (RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.REQUIRES_ACTION)


@dataclass
class ToolCallRecord:
    call_id: str
    name: str
    result: dict[str, Any]


@dataclass
class RunOutcome:
    reply: str
    thread_id: str
    run_id: str
    thread_replaced: bool = False
    tool_results: list[ToolCallRecord] = field(default_factory=list)


def _is_active_run_conflict(exc: BadRequestError) -> bool:
    text = str(exc).lower()
    return "while a run" in text or "is active" in text


def _failure_reason(run: Any) -> str | None:
    last_error = getattr(run, "last_error", None)
    if last_error is not None:
        return f"{last_error.code}: {last_error.message}"
    details = getattr(run, "incomplete_details", None)
    if details is not None:
        return getattr(details, "reason", None)
    return None


class RunOrchestrator:
    def __init__(
        self,
        client: OpenAI,
        sessions: AssistantSessionManager,
        dispatcher: ToolDispatcher,
        *,
        poll_interval: float = RUN_POLL_INTERVAL_SECONDS,
        initial_timeout: float = RUN_INITIAL_TIMEOUT_SECONDS,
        tool_timeout: float = RUN_TOOL_TIMEOUT_SECONDS,
        cancel_grace: float = RUN_CANCEL_GRACE_SECONDS,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._sessions = sessions
        self._dispatcher = dispatcher
        self._poll_interval = poll_interval
        self._initial_timeout = initial_timeout
        self._tool_timeout = tool_timeout
        self._cancel_grace = cancel_grace
        self._max_tool_rounds = max_tool_rounds
        self._sleep = sleep
        self._clock = clock

    def run_turn(
        self,
        user_id: str,
        content: str,
        *,
        timezone: str = "UTC",
        calendar_token: str | None = None,
        raw_input: str = "",
    ) -> RunOutcome:
        """Append *content* for *user_id*, run the assistant to completion and return its reply.

        Raises ``SessionUnavailable``, ``RunTimedOut`` or ``RunFailed``.
        """
        with metrics.track("assistant", "run_turn"):
            assistant_id = self._sessions.get_or_create_assistant(timezone)
            thread = self._sessions.resolve_thread(user_id)
            thread = self._append_message(user_id, thread, content)

            try:
                run = self._client.beta.threads.runs.create(
                    thread_id=thread.thread_id, assistant_id=assistant_id,
                )
            except OpenAIError as exc:
                raise SessionUnavailable(f"Could not start a run on {thread.thread_id}") from exc
            logger.info("Started run %s on thread %s for %s", run.id, thread.thread_id, user_id)

            records: list[ToolCallRecord] = []
            run = self._wait(thread.thread_id, run, self._initial_timeout)
            rounds = 0
            while True:
                status = RunStatus.parse(run.status)
                if status is RunStatus.COMPLETED:
                    break
                if status is not RunStatus.REQUIRES_ACTION:
                    raise RunFailed(run.id, status.value, _failure_reason(run))

                rounds += 1
                if rounds > self._max_tool_rounds:
                    self._cancel_quietly(thread.thread_id, run.id)
                    raise RunFailed(run.id, status.value, f"more than {self._max_tool_rounds} tool rounds")

                batch = self._run_tools(run, user_id, timezone, calendar_token, raw_input)
                records.extend(batch)
                try:
                    run = self._client.beta.threads.runs.submit_tool_outputs(
                        run.id,
                        thread_id=thread.thread_id,
                        tool_outputs=[
                            {"tool_call_id": r.call_id, "output": json.dumps(r.result, default=str)}
                            for r in batch
                        ],
                    )
                except OpenAIError as exc:
                    raise RunFailed(run.id, status.value, "tool output submission rejected") from exc
                run = self._wait(thread.thread_id, run, self._tool_timeout)

            reply = self._latest_reply(thread.thread_id, run.id)
            return RunOutcome(
                reply=reply,
                thread_id=thread.thread_id,
                run_id=run.id,
                thread_replaced=thread.replaced,
                tool_results=records,
            )

    # ── Message append with conflict recovery ────────────────────────

    def _append_message(self, user_id: str, thread: ThreadResolution, content: str) -> ThreadResolution:
        try:
            self._create_message(thread.thread_id, content)
            return thread
        except BadRequestError as exc:
            if not _is_active_run_conflict(exc):
                raise SessionUnavailable(f"Could not append to thread {thread.thread_id}") from exc
        except OpenAIError as exc:
            raise SessionUnavailable(f"Could not append to thread {thread.thread_id}") from exc

        logger.warning("Thread %s has an active run; cancelling before retry", thread.thread_id)
        if self._cancel_active_runs(thread.thread_id):
            self._sleep(self._cancel_grace)
            try:
                self._create_message(thread.thread_id, content)
                return thread
            except OpenAIError as exc:
                logger.warning("Append still blocked on %s after cancel: %s", thread.thread_id, exc)

        replacement = self._sessions.replace_thread(user_id, thread.thread_id)
        try:
            self._create_message(replacement.thread_id, content)
        except OpenAIError as exc:
            raise SessionUnavailable(f"Could not append to thread {replacement.thread_id}") from exc
        return replacement

    def _create_message(self, thread_id: str, content: str) -> None:
        self._client.beta.threads.messages.create(thread_id, role="user", content=content)

    def _cancel_active_runs(self, thread_id: str) -> bool:
        """Cancel every run blocking *thread_id*; ``False`` if any cancel failed."""
        try:
            runs = self._client.beta.threads.runs.list(thread_id, limit=10)
            for run in runs.data:
                if RunStatus.parse(run.status).blocks_thread:
                    self._client.beta.threads.runs.cancel(run.id, thread_id=thread_id)
                    logger.info("Cancelled stuck run %s on %s", run.id, thread_id)
        except OpenAIError as exc:
            logger.warning("Could not cancel active run on %s: %s", thread_id, exc)
            return False
        return True

    def _cancel_quietly(self, thread_id: str, run_id: str) -> None:
        try:
            self._client.beta.threads.runs.cancel(run_id, thread_id=thread_id)
        except OpenAIError as exc:
            logger.warning("Could not cancel run %s: %s", run_id, exc)

    # ── Polling ──────────────────────────────────────────────────────

    def _wait(self, thread_id: str, run: Any, timeout: float) -> Any:
        """Poll until *run* leaves the queued/in-progress states or *timeout* elapses."""
        started = self._clock()
        while RunStatus.parse(run.status).is_pending:
            waited = self._clock() - started
            if waited >= timeout:
                self._cancel_quietly(thread_id, run.id)
                raise RunTimedOut(run.id, run.status, waited)
            self._sleep(self._poll_interval)
            try:
                run = self._client.beta.threads.runs.retrieve(run.id, thread_id=thread_id)
            except OpenAIError as exc:
                # A single failed poll is retried on the next tick.
                logger.warning("Polling run %s failed: %s", run.id, exc)
                continue
            logger.debug("Run %s is %s", run.id, run.status)
        return run

    # ── Tool calls ───────────────────────────────────────────────────

    def _run_tools(
        self,
        run: Any,
        user_id: str,
        timezone: str,
        calendar_token: str | None,
        raw_input: str,
    ) -> list[ToolCallRecord]:
        calls = list(run.required_action.submit_tool_outputs.tool_calls)
        logger.info(
            "Run %s requested %d tool call(s): %s",
            run.id, len(calls), ", ".join(c.function.name for c in calls),
        )

        def _execute(call: Any) -> ToolCallRecord:
            result = self._dispatcher.execute(
                call.function.name,
                call.function.arguments,
                user_id,
                calendar_token,
                timezone=timezone,
                raw_input=raw_input,
            )
            return ToolCallRecord(call_id=call.id, name=call.function.name, result=result)

        if len(calls) == 1:
            return [_execute(calls[0])]
        with ThreadPoolExecutor(max_workers=min(len(calls), MAX_PARALLEL_TOOL_CALLS)) as pool:
            return list(pool.map(_execute, calls))

    # ── Reply ────────────────────────────────────────────────────────

    def _latest_reply(self, thread_id: str, run_id: str) -> str:
        try:
            page = self._client.beta.threads.messages.list(thread_id, order="desc", limit=20)
        except OpenAIError as exc:
            raise SessionUnavailable(f"Could not read replies on {thread_id}") from exc

        replies = [m for m in page.data if m.role == "assistant"]
        if not replies:
            return ""
        chosen = replies[0]
        for message in replies:
            if message.run_id == run_id:
                chosen = message
                break
        texts = [block.text.value for block in chosen.content if block.type == "text"]
        return "\n".join(texts).strip()
