"""Shared test fixtures for the voice calendar test suite."""

from __future__ import annotations

import json
import os
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-123")
    os.environ.setdefault("METRICS_ENABLED", "false")


# ── Storage ──────────────────────────────────────────────────────────


@pytest.fixture
def store():
    from voice_calendar.services.store import InMemoryDocumentStore

    return InMemoryDocumentStore()


@pytest.fixture
def appointments(store):
    from voice_calendar.services.repositories import AppointmentRepository

    return AppointmentRepository(store)


@pytest.fixture
def add_appointment(appointments):
    """Factory fixture: persist an appointment for ``user-1`` and return it."""
    from voice_calendar.models import Appointment

    def _add(title: str, date: str = "2025-07-25", user_id: str = "user-1", **fields):
        return appointments.add(user_id, Appointment(title=title, date=date, **fields))

    return _add


# ── Calendar provider ────────────────────────────────────────────────


@pytest.fixture
def calendar_client():
    client = MagicMock()
    client.insert_event.return_value = "evt-123"
    return client


@pytest.fixture
def calendar_factory(calendar_client):
    return MagicMock(return_value=calendar_client)


# ── Remote assistant fakes ───────────────────────────────────────────


def make_tool_call(call_id: str, name: str, arguments: dict | str) -> SimpleNamespace:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return SimpleNamespace(
        id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments),
    )


def make_run(status: str, run_id: str = "run_1", tool_calls: list | None = None, **extra) -> SimpleNamespace:
    required_action = None
    if tool_calls is not None:
        required_action = SimpleNamespace(
            type="submit_tool_outputs",
            submit_tool_outputs=SimpleNamespace(tool_calls=tool_calls),
        )
    fields = {"last_error": None, "incomplete_details": None}
    fields.update(extra)
    return SimpleNamespace(id=run_id, status=status, required_action=required_action, **fields)


def make_message(text: str, role: str = "assistant", run_id: str | None = "run_1") -> SimpleNamespace:
    block = SimpleNamespace(type="text", text=SimpleNamespace(value=text))
    return SimpleNamespace(role=role, run_id=run_id, content=[block])


def api_error(cls, message: str, status_code: int = 400):
    """Build an ``openai`` status error the way the SDK raises it."""
    request = httpx.Request("POST", "https://api.openai.com/v1/threads")
    return cls(message, response=httpx.Response(status_code, request=request), body=None)


@pytest.fixture
def openai_client():
    """A MagicMock OpenAI client preconfigured for a happy-path turn."""
    client = MagicMock()
    client.beta.assistants.create.return_value = SimpleNamespace(id="asst_1", model="gpt-4o-mini")
    client.beta.assistants.retrieve.return_value = SimpleNamespace(id="asst_1", model="gpt-4o-mini")
    client.beta.threads.create.return_value = SimpleNamespace(id="thread_1")
    client.beta.threads.runs.create.return_value = make_run("queued")
    client.beta.threads.runs.retrieve.return_value = make_run("completed")
    client.beta.threads.messages.list.return_value = SimpleNamespace(
        data=[make_message("All set.")],
    )
    return client
