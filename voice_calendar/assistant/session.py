"""Owns the remote assistant identity and each user's conversation thread.

The assistant is reconciled rather than cached: every call compares the
stored identity and the remote assistant with the expected model, repairs
what does not match and pushes the current instructions and tool catalog.

Threads are one per user.  :meth:`AssistantSessionManager.resolve_thread`
returns the stored thread when the service still knows it and mints a new
one otherwise, reporting which happened through ``ThreadResolution``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from openai import OpenAI, OpenAIError

from voice_calendar.config import ASSISTANT_MODEL, ASSISTANT_NAME
from voice_calendar.errors import SessionUnavailable
from voice_calendar.models import AssistantIdentity, ConversationThread
from voice_calendar.prompts import build_instructions
from voice_calendar.services.metrics import metrics
from voice_calendar.services.repositories import SessionRepository
from voice_calendar.tools.catalog import TOOL_CATALOG

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreadResolution:
    thread_id: str
    # True when a previously stored thread was abandoned for this one.
    replaced: bool = False
    previous_thread_id: str | None = None


class AssistantSessionManager:
    def __init__(
        self,
        client: OpenAI,
        sessions: SessionRepository,
        model: str = ASSISTANT_MODEL,
        name: str = ASSISTANT_NAME,
    ) -> None:
        self._client = client
        self._sessions = sessions
        self._model = model
        self._name = name

    @property
    def model(self) -> str:
        return self._model

    # ── Assistant identity ───────────────────────────────────────────

    def get_or_create_assistant(self, timezone: str = "UTC") -> str:
        return self.reconcile_assistant(timezone).assistant_id

    def reconcile_assistant(self, timezone: str = "UTC") -> AssistantIdentity:
        """Return a usable assistant on the expected model, repairing or recreating it."""
        instructions = build_instructions(timezone)
        with metrics.track("assistant", "reconcile_assistant"):
            stored = self._sessions.get_assistant_identity()
            if stored is not None and stored.model != self._model:
                logger.info(
                    "Stored assistant %s uses %s, expected %s; recreating",
                    stored.assistant_id, stored.model, self._model,
                )
                self._delete_quietly(stored.assistant_id)
                stored = None

            if stored is not None:
                refreshed = self._refresh(stored, instructions)
                if refreshed is not None:
                    return refreshed

            return self._create(instructions)

    def _refresh(self, stored: AssistantIdentity, instructions: str) -> AssistantIdentity | None:
        """Push current instructions onto the stored assistant, or ``None`` if it must be recreated."""
        try:
            remote = self._client.beta.assistants.retrieve(stored.assistant_id)
        except OpenAIError as exc:
            logger.info("Stored assistant %s not retrievable (%s); recreating", stored.assistant_id, exc)
            return None

        if remote.model != self._model:
            logger.info(
                "Remote assistant %s runs %s, expected %s; recreating",
                stored.assistant_id, remote.model, self._model,
            )
            self._delete_quietly(stored.assistant_id)
            return None

        try:
            self._client.beta.assistants.update(
                stored.assistant_id,
                name=self._name,
                instructions=instructions,
                tools=TOOL_CATALOG,
                model=self._model,
            )
        except OpenAIError as exc:
            raise SessionUnavailable(f"Could not update assistant {stored.assistant_id}") from exc
        logger.debug("Refreshed assistant %s", stored.assistant_id)
        return stored

    def _create(self, instructions: str) -> AssistantIdentity:
        try:
            created = self._client.beta.assistants.create(
                name=self._name,
                instructions=instructions,
                tools=TOOL_CATALOG,
                model=self._model,
            )
        except OpenAIError as exc:
            raise SessionUnavailable("Could not create the assistant") from exc

        if created.model != self._model:
            self._delete_quietly(created.id)
            raise SessionUnavailable(
                f"Assistant was created on {created.model!r} instead of {self._model!r}"
            )

        identity = AssistantIdentity(assistant_id=created.id, model=created.model)
        self._sessions.save_assistant_identity(identity)
        logger.info("Created assistant %s on %s", created.id, created.model)
        return identity

    def _delete_quietly(self, assistant_id: str) -> None:
        try:
            self._client.beta.assistants.delete(assistant_id)
        except OpenAIError as exc:
            logger.warning("Could not delete assistant %s: %s", assistant_id, exc)

    # ── Threads ──────────────────────────────────────────────────────

    def get_or_create_thread(self, user_id: str) -> str:
        return self.resolve_thread(user_id).thread_id

    def resolve_thread(self, user_id: str) -> ThreadResolution:
        stored = self._sessions.get_thread(user_id)
        if stored is None:
            return ThreadResolution(thread_id=self._new_thread(user_id).thread_id)

        try:
            self._client.beta.threads.retrieve(stored.thread_id)
        except OpenAIError as exc:
            logger.info("Thread %s for %s is gone (%s); starting a new one", stored.thread_id, user_id, exc)
            return self.replace_thread(user_id, stored.thread_id)
        return ThreadResolution(thread_id=stored.thread_id)

    def replace_thread(self, user_id: str, stale_thread_id: str) -> ThreadResolution:
        """Abandon *stale_thread_id* and make a fresh thread the user's active one."""
        thread = self._new_thread(user_id, previous_thread_id=stale_thread_id)
        logger.warning(
            "Replaced thread %s with %s for user %s", stale_thread_id, thread.thread_id, user_id,
        )
        return ThreadResolution(
            thread_id=thread.thread_id, replaced=True, previous_thread_id=stale_thread_id,
        )

    def _new_thread(self, user_id: str, previous_thread_id: str | None = None) -> ConversationThread:
        try:
            remote = self._client.beta.threads.create()
        except OpenAIError as exc:
            raise SessionUnavailable(f"Could not create a thread for user {user_id}") from exc
        thread = ConversationThread(thread_id=remote.id, previous_thread_id=previous_thread_id)
        self._sessions.save_thread(user_id, thread)
        return thread
