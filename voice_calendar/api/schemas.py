"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CommandRequest(BaseModel):
    """A spoken or typed command from the client."""

    command: str = Field(..., max_length=2000, description="The user's free-text command")
    timezone: str = Field(
        default="UTC", max_length=64, description="IANA timezone of the caller, e.g. Europe/Lisbon",
    )
    calendar_token: str | None = Field(
        default=None, description="Google Calendar access token for syncing, if connected",
    )


class CommandResponse(BaseModel):
    """Outcome of one turn."""

    success: bool
    message: str = Field(..., description="Reply to read back to the user")
    appointment: dict[str, Any] | None = None
    appointments: list[dict[str, Any]] | None = None
    thread_id: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "voice-calendar"
