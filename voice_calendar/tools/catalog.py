"""The fixed catalog of tools the remote assistant may call.

Each tool's arguments are a pydantic model.  The same model is used for
two things:

1. ``TOOL_CATALOG``: the OpenAI function schemas uploaded with the
   assistant, generated with ``convert_to_openai_tool``.  Required
   fields in the schema are exactly the model fields without defaults.
2. Validating the arguments of an incoming tool call in the dispatcher.
"""

from __future__ import annotations

from typing import Any, Literal

from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from voice_calendar.models import check_date, normalize_time


class _ToolArgs(BaseModel):
    # The assistant occasionally adds keys of its own; they are ignored.
    model_config = ConfigDict(extra="ignore")


class _DatedArgs(_ToolArgs):
    @field_validator("date", "start_date", "end_date", check_fields=False)
    @classmethod
    def _validate_dates(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value and value.strip():
            return check_date(value.strip())
        if cls.model_fields[info.field_name].is_required():
            raise ValueError(f"{info.field_name} is required")
        return None

    @field_validator("time", mode="before", check_fields=False)
    @classmethod
    def _normalise_time(cls, value: Any) -> str | None:
        return normalize_time(value)


# ── Slot filling ─────────────────────────────────────────────────────


class TrackPartialAppointmentArgs(_ToolArgs):
    """Remember an appointment the user has started describing but not finished.

    Call this whenever the user gives some details (for example only a date
    or only a person) and something required is still missing.
    """

    model_config = ConfigDict(title="track_partial_appointment")

    event_kind: Literal["meeting", "personal"] = Field(
        description="Whether this is a meeting with others or a personal event.",
    )
    collected_fields: dict[str, Any] = Field(
        description="Details gathered so far, e.g. {\"date\": \"2025-07-25\", \"attendees\": [\"Sarah\"]}.",
    )
    missing_fields: list[str] = Field(
        description="Names of the details still needed, most important first (e.g. [\"time\"]).",
    )


# ── Creation ─────────────────────────────────────────────────────────


class ScheduleAppointmentArgs(_DatedArgs):
    """Create a meeting. Only the date is required; omit the time for all-day or undecided."""

    model_config = ConfigDict(title="schedule_appointment")

    date: str = Field(description="Meeting date, YYYY-MM-DD.")
    time: str | None = Field(default=None, description="Start time, 24-hour HH:MM.")
    duration: int | None = Field(default=None, ge=1, le=24 * 60, description="Length in minutes.")
    title: str | None = Field(default=None, description="Short title; leave empty to derive one.")
    attendees: list[str] = Field(default_factory=list, description="Names of the people attending.")
    location: str | None = Field(default=None, description="Where the meeting takes place.")
    description: str | None = Field(default=None, description="Any extra notes.")


class CreatePersonalEventArgs(_DatedArgs):
    """Create a personal event such as a reminder, errand, birthday or workout."""

    model_config = ConfigDict(title="create_personal_event")

    title: str = Field(description="What the event is, e.g. \"Gym\" or \"Mom's birthday\".")
    date: str = Field(description="Event date, YYYY-MM-DD.")
    time: str | None = Field(default=None, description="Start time, 24-hour HH:MM.")
    duration: int | None = Field(default=None, ge=1, le=24 * 60, description="Length in minutes.")
    location: str | None = Field(default=None, description="Where the event takes place.")
    description: str | None = Field(default=None, description="Any extra notes.")


# ── Cancellation ─────────────────────────────────────────────────────


class CancelAppointmentArgs(_DatedArgs):
    """Cancel one specific appointment identified by title, time and/or attendees."""

    model_config = ConfigDict(title="cancel_appointment")

    date: str = Field(description="Date of the appointment, YYYY-MM-DD.")
    title: str | None = Field(default=None, description="Full or partial title.")
    time: str | None = Field(default=None, description="Start time, 24-hour HH:MM.")
    attendees: list[str] = Field(default_factory=list, description="People in the appointment.")


class CancelAllAppointmentsArgs(_DatedArgs):
    """Cancel EVERY appointment on a date or date range.

    Always use this for "cancel all/everything" requests, never repeated
    cancel_appointment calls.
    """

    model_config = ConfigDict(title="cancel_all_appointments_for_date")

    start_date: str = Field(description="First date, YYYY-MM-DD.")
    end_date: str | None = Field(default=None, description="Last date, YYYY-MM-DD; defaults to start_date.")


class CancellationCandidateArg(_DatedArgs):
    title: str = Field(default="", description="Appointment title.")
    time: str | None = Field(default=None, description="Start time, HH:MM.")
    attendees: list[str] = Field(default_factory=list)


class PreviewCancellationArgs(_DatedArgs):
    """Show the user which appointments would be cancelled and ask them to confirm first."""

    model_config = ConfigDict(title="preview_appointments_for_cancellation")

    date: str = Field(description="Date, YYYY-MM-DD.")
    candidate_list: list[CancellationCandidateArg] = Field(
        description="The appointments that would be cancelled.",
    )
    cancellation_type: Literal["all", "specific"] = Field(
        description="\"all\" for everything on the date, \"specific\" for a subset.",
    )
    end_date: str | None = Field(default=None, description="Last date of a range, YYYY-MM-DD.")


# ── Queries & settings ───────────────────────────────────────────────


class GetAppointmentsArgs(_DatedArgs):
    """List the user's appointments for a date or date range."""

    model_config = ConfigDict(title="get_appointments")

    start_date: str = Field(description="First date, YYYY-MM-DD.")
    end_date: str | None = Field(default=None, description="Last date, YYYY-MM-DD; defaults to start_date.")


class DayWindow(_ToolArgs):
    start: str = Field(default="", description="HH:MM, or empty if unavailable that day.")
    end: str = Field(default="", description="HH:MM, or empty if unavailable that day.")

    @field_validator("start", "end", mode="before")
    @classmethod
    def _normalise(cls, value: Any) -> str:
        return normalize_time(value) or ""


class SetAvailabilityArgs(_ToolArgs):
    """Set the user's general weekly availability. Only the days mentioned are changed."""

    model_config = ConfigDict(title="set_availability")

    monday: DayWindow | None = None
    tuesday: DayWindow | None = None
    wednesday: DayWindow | None = None
    thursday: DayWindow | None = None
    friday: DayWindow | None = None
    saturday: DayWindow | None = None
    sunday: DayWindow | None = None


TOOL_ARGS: dict[str, type[BaseModel]] = {
    model.model_config["title"]: model
    for model in (
        TrackPartialAppointmentArgs,
        ScheduleAppointmentArgs,
        CreatePersonalEventArgs,
        CancelAppointmentArgs,
        CancelAllAppointmentsArgs,
        PreviewCancellationArgs,
        GetAppointmentsArgs,
        SetAvailabilityArgs,
    )
}

TOOL_CATALOG: list[dict[str, Any]] = [convert_to_openai_tool(m) for m in TOOL_ARGS.values()]
