"""FastAPI route definitions for the voice calendar API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Header, HTTPException, Request

from voice_calendar.agent import CommandAgent
from voice_calendar.api.schemas import CommandRequest, CommandResponse, HealthResponse
from voice_calendar.errors import MissingIdentity

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request) -> CommandAgent:
    """Retrieve the command agent built during the FastAPI lifespan (see ``server.py``)."""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return agent


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/command", response_model=CommandResponse)
async def command(
    request: CommandRequest,
    http_request: Request,
    x_user_id: str | None = Header(default=None),
):
    """Resolve one calendar command for the authenticated user.

    The caller's identity arrives in the ``X-User-ID`` header, set by the
    authenticating gateway in front of this service.  The turn itself is
    blocking (it polls the assistant service), so it runs in a worker
    thread via ``asyncio.to_thread``.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity.")

    agent = _get_agent(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(
            agent.process_command,
            request.command,
            x_user_id.strip(),
            request.timezone,
            request.calendar_token,
        )
    except MissingIdentity as e:
        raise HTTPException(status_code=401, detail="Missing user identity.") from e
    except Exception as e:
        logger.exception("[%s] Error processing command", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return CommandResponse(
        success=result.success,
        message=result.message,
        appointment=result.appointment,
        appointments=result.appointments,
        thread_id=result.thread_id,
    )
