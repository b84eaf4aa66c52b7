"""Domain records persisted by the command-resolution core.

All records are pydantic models so that tool arguments, stored documents
and API payloads share one validation layer.  Dates travel as
``YYYY-MM-DD`` strings and times as 24-hour ``HH:MM`` strings, which is
also how they are stored and compared.
"""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

# Defaults for vague times of day.
VAGUE_TIMES = {
    "morning": "09:00",
    "noon": "12:00",
    "midday": "12:00",
    "afternoon": "14:00",
    "evening": "18:00",
}
_UNSET_TIMES = {"all day", "all-day", "allday", "tbd", "none", "unset"}
_24H_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_12H_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m?\.?$")


def utcnow() -> datetime:
    return datetime.now(UTC)


def check_date(value: str) -> str:
    datetime.strptime(value, DATE_FORMAT)
    return value


def normalize_time(value: Any) -> str | None:
    """Coerce ``"14:00"``, ``"2:30 PM"``, ``"9am"`` or ``"morning"`` to ``HH:MM``.

    Blank values and all-day markers become ``None``; anything else
    raises ``ValueError``.
    """
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text or text in _UNSET_TIMES:
        return None
    if text in VAGUE_TIMES:
        return VAGUE_TIMES[text]

    match_24h = _24H_RE.match(text)
    match_12h = _12H_RE.match(text)
    if match_24h:
        hour, minute = int(match_24h.group(1)), int(match_24h.group(2))
    elif match_12h:
        hour, minute = int(match_12h.group(1)), int(match_12h.group(2) or 0)
        if not 1 <= hour <= 12:
            raise ValueError(f"Unrecognised time: {value!r}")
        hour = hour % 12 + (12 if match_12h.group(3) == "p" else 0)
    else:
        raise ValueError(f"Unrecognised time: {value!r}")

    if hour > 23 or minute > 59:
        raise ValueError(f"Unrecognised time: {value!r}")
    return f"{hour:02d}:{minute:02d}"


def _check_time(value: str) -> str:
    datetime.strptime(value, TIME_FORMAT)
    return value


def clean_attendees(names: list[str] | None) -> list[str]:
    """Trim, drop empties and de-duplicate (case-insensitive), keeping order."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for name in names or []:
        if not isinstance(name, str):
            continue
        stripped = name.strip()
        if not stripped or stripped.lower() in seen:
            continue
        seen.add(stripped.lower())
        cleaned.append(stripped)
    return cleaned


class EventKind(str, Enum):
    PERSONAL = "personal"
    MEETING = "meeting"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class SyncState(str, Enum):
    NOT_SYNCED = "not_synced"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"


class CancellationType(str, Enum):
    ALL = "all"
    SPECIFIC = "specific"


# ── Appointment ──────────────────────────────────────────────────────


class Appointment(BaseModel):
    """A calendar entry owned by one user.

    ``time`` of ``None`` means all-day / time not decided yet, in which
    case ``duration`` is always ``None`` too.  Cancellation is a status
    transition; records are never removed.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    date: str
    time: str | None = None
    duration: int | None = None
    attendees: list[str] = Field(default_factory=list)
    location: str | None = None
    description: str | None = None
    kind: EventKind = EventKind.MEETING
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    external_event_id: str | None = None
    sync_state: SyncState = SyncState.NOT_SYNCED
    sync_error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    cancelled_at: datetime | None = None

    @field_validator("date")
    @classmethod
    def _validate_date(cls, value: str) -> str:
        return check_date(value)

    @field_validator("time")
    @classmethod
    def _validate_time(cls, value: str | None) -> str | None:
        return _check_time(value) if value else None

    @field_validator("attendees", mode="before")
    @classmethod
    def _normalise_attendees(cls, value: Any) -> list[str]:
        return clean_attendees(value)

    @model_validator(mode="after")
    def _unset_time_has_no_duration(self) -> Appointment:
        if self.time is None:
            self.duration = None
        return self

    @property
    def is_cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED

    def describe(self) -> str:
        """Short human-readable form, e.g. ``Review at 14:00 with John``."""
        when = f"at {self.time}" if self.time else "(all day)"
        with_text = f" with {', '.join(self.attendees)}" if self.attendees else ""
        return f"{self.title} {when}{with_text}"

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Appointment:
        return cls.model_validate(doc)


def appointment_sort_key(appointment: Appointment) -> tuple[str, str]:
    # All-day entries sort ahead of timed ones on the same date.
    return appointment.date, appointment.time or ""


# ── Slot filling ─────────────────────────────────────────────────────


class PartialAppointmentContext(BaseModel):
    """The one in-flight, not-yet-complete appointment for a user."""

    event_kind: EventKind = EventKind.MEETING
    collected_fields: dict[str, Any] = Field(default_factory=dict)
    missing_fields: list[str] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utcnow)

    def summary(self) -> str:
        """One line that is prepended to the user's next message."""
        collected = ", ".join(
            f"{key}={value}" for key, value in self.collected_fields.items()
            if value not in (None, "", [])
        ) or "nothing yet"
        missing = ", ".join(self.missing_fields) or "nothing"
        return (
            f"[Context: in-progress {self.event_kind.value} appointment; "
            f"collected: {collected}; still needed: {missing}]"
        )


# ── Bulk cancellation preview ────────────────────────────────────────


class CancellationCandidate(BaseModel):
    title: str = ""
    time: str | None = None
    attendees: list[str] = Field(default_factory=list)

    @field_validator("attendees", mode="before")
    @classmethod
    def _normalise_attendees(cls, value: Any) -> list[str]:
        return clean_attendees(value)

    def describe(self) -> str:
        when = f" at {self.time}" if self.time else ""
        with_text = f" with {', '.join(self.attendees)}" if self.attendees else ""
        return f"{self.title or 'Untitled'}{when}{with_text}"


class PendingBulkCancellation(BaseModel):
    date: str
    end_date: str | None = None
    candidates: list[CancellationCandidate] = Field(default_factory=list)
    cancellation_type: CancellationType = CancellationType.ALL
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("date", "end_date")
    @classmethod
    def _validate_dates(cls, value: str | None) -> str | None:
        return check_date(value) if value else None

    def is_expired(self, ttl_minutes: int, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return now - self.created_at > timedelta(minutes=ttl_minutes)

    def summary(self) -> str:
        span = f"{self.date} to {self.end_date}" if self.end_date else self.date
        text = (
            f"[Context: awaiting yes/no confirmation of a {self.cancellation_type.value} cancellation of "
            f"{len(self.candidates)} appointment(s) on {span}"
        )
        if self.candidates:
            text += ": " + "; ".join(c.describe() for c in self.candidates)
        return text + "]"


# ── Availability ─────────────────────────────────────────────────────


class DayAvailability(BaseModel):
    start: str = ""
    end: str = ""

    @property
    def available(self) -> bool:
        return bool(self.start and self.end)


class WeeklyAvailability(BaseModel):
    days: dict[str, DayAvailability] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=utcnow)


# ── Assistant session identity ───────────────────────────────────────


class AssistantIdentity(BaseModel):
    """The remote assistant program this process talks to."""

    model_config = ConfigDict(frozen=True)

    assistant_id: str
    model: str
    created_at: datetime = Field(default_factory=utcnow)


class ConversationThread(BaseModel):
    thread_id: str
    created_at: datetime = Field(default_factory=utcnow)
    previous_thread_id: str | None = None
