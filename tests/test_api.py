"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from voice_calendar.agent import TurnResult
from voice_calendar.server import app


@pytest.fixture
def mock_agent():
    """Create a mock agent and attach it to app state (mirrors the lifespan)."""
    agent = MagicMock()
    agent.process_command.return_value = TurnResult(
        success=True,
        message="Review on 2025-07-25 at 14:00 has been added to your calendar.",
        appointment={"title": "Review", "date": "2025-07-25"},
        thread_id="thread_1",
    )
    app.state.agent = agent
    yield agent
    app.state.agent = None


@pytest.fixture
def client(mock_agent):
    """Test client without entering the lifespan, so no real agent is built."""
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "voice-calendar"}


class TestCommandEndpoint:
    def test_command_returns_turn_result(self, client, mock_agent):
        response = client.post(
            "/api/command",
            json={"command": "review friday at 2", "timezone": "Europe/Lisbon", "calendar_token": "tok"},
            headers={"X-User-ID": "user-1"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["appointment"]["title"] == "Review"
        assert data["thread_id"] == "thread_1"
        mock_agent.process_command.assert_called_once_with(
            "review friday at 2", "user-1", "Europe/Lisbon", "tok",
        )

    def test_timezone_defaults_to_utc(self, client, mock_agent):
        client.post("/api/command", json={"command": "hi"}, headers={"X-User-ID": "user-1"})
        assert mock_agent.process_command.call_args.args[2] == "UTC"

    def test_missing_identity_is_401(self, client, mock_agent):
        response = client.post("/api/command", json={"command": "hi"})
        assert response.status_code == 401
        mock_agent.process_command.assert_not_called()

    def test_missing_command_is_422(self, client):
        response = client.post("/api/command", json={}, headers={"X-User-ID": "user-1"})
        assert response.status_code == 422

    def test_agent_error_does_not_leak(self, client, mock_agent):
        mock_agent.process_command.side_effect = RuntimeError("secret stack detail")
        response = client.post("/api/command", json={"command": "hi"}, headers={"X-User-ID": "user-1"})
        assert response.status_code == 500
        assert "secret" not in response.text

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_503_while_starting(self, client, mock_agent):
        app.state.agent = None
        response = client.post("/api/command", json={"command": "hi"}, headers={"X-User-ID": "user-1"})
        assert response.status_code == 503
