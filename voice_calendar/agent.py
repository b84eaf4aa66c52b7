"""Turn entry point for the voice calendar assistant.

Architecture:
  A turn is one free-text command from one user.  ``CommandAgent`` wraps
  it in whatever conversational state the user has pending, hands it to
  the :class:`~voice_calendar.assistant.orchestrator.RunOrchestrator` and
  turns the outcome into a ``TurnResult``:

    command ─► [context prefix] ─► RunOrchestrator ─► assistant run
                                        │
                                        └─► ToolDispatcher ─► stores / calendar

  Pending state:
    A partially described appointment and an unconfirmed bulk
    cancellation are each summarised in one ``[Context: ...]`` line that
    is prepended to the user's message, so the assistant can finish the
    flow even when the thread was replaced.

  Failures:
    Orchestration errors never leave this module.  Each maps to one fixed
    sentence; the raw error is logged, not returned.

  Concurrency:
    Turns for the same user are serialised with a per-user lock so two
    requests never race on one conversation thread.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Any

from openai import OpenAI

from voice_calendar.assistant.orchestrator import RunOrchestrator, RunOutcome
from voice_calendar.assistant.session import AssistantSessionManager
from voice_calendar.errors import MissingIdentity, RunFailed, RunTimedOut, SessionUnavailable
from voice_calendar.services.calendar_client import GoogleCalendarClient
from voice_calendar.services.openai_client import get_openai_client
from voice_calendar.services.repositories import SessionRepository
from voice_calendar.services.slot_filling import PendingCancellationStore, SlotFillingStore
from voice_calendar.services.store import DocumentStore, InMemoryDocumentStore
from voice_calendar.tools.dispatcher import ToolDispatcher
from voice_calendar.tools.scheduling import CalendarFactory

logger = logging.getLogger(__name__)

# ── User-facing failure messages ─────────────────────────────────────

EMPTY_COMMAND_MESSAGE = "I didn't catch that. Could you say it again?"
SESSION_UNAVAILABLE_MESSAGE = (
    "Sorry, I'm having trouble connecting to the assistant right now. "
    "Please try again in a moment."
)
TIMEOUT_MESSAGE = "This is taking longer than usual. Please try again."
RUN_FAILED_MESSAGE = "Sorry, I couldn't complete that request. Please try again."
GENERIC_ERROR_MESSAGE = "Something went wrong while processing your command. Please try again."
NO_REPLY_MESSAGE = "Done."

_CREATION_TOOLS = ("schedule_appointment", "create_personal_event")


@dataclass
class TurnResult:
    success: bool
    message: str
    appointment: dict[str, Any] | None = None
    appointments: list[dict[str, Any]] | None = None
    thread_id: str | None = None
    thread_replaced: bool = False


class CommandAgent:
    def __init__(
        self,
        orchestrator: RunOrchestrator,
        slot_filling: SlotFillingStore,
        pending: PendingCancellationStore,
    ) -> None:
        self._orchestrator = orchestrator
        self._slot_filling = slot_filling
        self._pending = pending
        # A lock lives only while a turn holds or waits on it.
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def build_message(self, user_id: str, command: str) -> str:
        """Prefix *command* with one context line per pending conversational state."""
        lines = []
        partial = self._slot_filling.get(user_id)
        if partial is not None:
            lines.append(partial.summary())
        pending = self._pending.get(user_id)
        if pending is not None:
            lines.append(pending.summary())
        lines.append(command)
        return "\n".join(lines)

    def process_command(
        self,
        command: str,
        user_id: str | None,
        timezone: str = "UTC",
        calendar_token: str | None = None,
    ) -> TurnResult:
        """Resolve one command for *user_id*.

        Raises ``MissingIdentity`` when no user id is given; every other
        failure comes back as an unsuccessful ``TurnResult``.
        """
        if not user_id or not user_id.strip():
            raise MissingIdentity("A user id is required")
        command = (command or "").strip()
        if not command:
            return TurnResult(success=False, message=EMPTY_COMMAND_MESSAGE)

        with self._user_lock(user_id):
            try:
                content = self.build_message(user_id, command)
                outcome = self._orchestrator.run_turn(
                    user_id,
                    content,
                    timezone=timezone or "UTC",
                    calendar_token=calendar_token,
                    raw_input=command,
                )
            except SessionUnavailable:
                logger.exception("Assistant session unavailable for %s", user_id)
                return TurnResult(success=False, message=SESSION_UNAVAILABLE_MESSAGE)
            except RunTimedOut as exc:
                logger.warning("Turn for %s timed out: %s", user_id, exc)
                return TurnResult(success=False, message=TIMEOUT_MESSAGE)
            except RunFailed as exc:
                logger.warning("Run failed for %s: %s", user_id, exc)
                return TurnResult(success=False, message=RUN_FAILED_MESSAGE)
            except Exception:
                logger.exception("Unexpected error processing command for %s", user_id)
                return TurnResult(success=False, message=GENERIC_ERROR_MESSAGE)

        return self._to_result(outcome)

    @staticmethod
    def _to_result(outcome: RunOutcome) -> TurnResult:
        appointment = None
        appointments = None
        for record in outcome.tool_results:
            if not record.result.get("success"):
                continue
            if record.name in _CREATION_TOOLS:
                appointment = record.result.get("appointment")
            elif record.name == "get_appointments":
                appointments = record.result.get("appointments")

        message = outcome.reply
        if not message and outcome.tool_results:
            message = str(outcome.tool_results[-1].result.get("message", ""))
        return TurnResult(
            success=True,
            message=message or NO_REPLY_MESSAGE,
            appointment=appointment,
            appointments=appointments,
            thread_id=outcome.thread_id,
            thread_replaced=outcome.thread_replaced,
        )


# ── Assembly ─────────────────────────────────────────────────────────


def create_voice_calendar_agent(
    store: DocumentStore | None = None,
    client: OpenAI | None = None,
    calendar_factory: CalendarFactory = GoogleCalendarClient,
) -> CommandAgent:
    """Wire stores, session manager, dispatcher and orchestrator into a ``CommandAgent``.

    Defaults to the in-memory document store and the process-wide OpenAI
    client.
    """
    store = store if store is not None else InMemoryDocumentStore()
    client = client if client is not None else get_openai_client()

    sessions = AssistantSessionManager(client, SessionRepository(store))
    dispatcher = ToolDispatcher(store, calendar_factory)
    orchestrator = RunOrchestrator(client, sessions, dispatcher)
    agent = CommandAgent(orchestrator, SlotFillingStore(store), PendingCancellationStore(store))
    logger.debug(
        "Voice calendar agent ready: model=%s, tools=%d", sessions.model, len(dispatcher.tool_names),
    )
    return agent
