"""Exception types shared across the command-resolution core.

Only the orchestration plumbing lets these escape to the turn boundary
(``agent.py``), where each maps to a fixed user-facing sentence.  Tool
handlers never raise across the dispatcher; their failures become
structured ``{"success": False, ...}`` results instead.
"""

from __future__ import annotations


class VoiceCalendarError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(VoiceCalendarError):
    """A required field is missing or malformed.

    ``missing_fields`` lists the offending field names so the caller can
    phrase a clarifying question instead of failing.
    """

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        self.missing_fields = missing_fields or []
        super().__init__(message)


class MissingIdentity(VoiceCalendarError):
    """The turn arrived without an authenticated user id."""


class SessionUnavailable(VoiceCalendarError):
    """The remote assistant or the user's thread could not be obtained."""


class RunTimedOut(VoiceCalendarError):
    """A run did not reach a terminal state within its polling budget."""

    def __init__(self, run_id: str, status: str, waited_seconds: float):
        self.run_id = run_id
        self.status = status
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Run {run_id} still {status!r} after {waited_seconds:.1f}s"
        )


class RunFailed(VoiceCalendarError):
    """The remote run ended in a non-completed terminal state."""

    def __init__(self, run_id: str, status: str, reason: str | None = None):
        self.run_id = run_id
        self.status = status
        self.reason = reason
        super().__init__(f"Run {run_id} ended as {status!r}: {reason or 'no reason given'}")


class UnknownTool(VoiceCalendarError):
    """The assistant asked for a tool that is not in the catalog."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")
