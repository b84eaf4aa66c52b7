"""Appointment creation: defaults, sync tiering and the calendar push.

Only the date is mandatory.  Everything else degrades to a default so a
request is saved even when it is vague:

* no title → "Meeting with <attendees>", else the user's own words,
  else a generic "Meeting" / "Personal Event";
* no time → all-day / undecided, duration stays unset;
* a time but no duration → 30 minutes for meetings, 60 for personal events.

A saved appointment is pushed to the user's calendar straight away when it
is *ready* (see :func:`is_sync_ready`) and the turn carried a calendar
access token.  A failed push is recorded on the appointment and reported,
it never undoes the local save.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

import httpx

from voice_calendar.models import Appointment, EventKind, SyncState
from voice_calendar.services.calendar_client import CalendarAPIError, GoogleCalendarClient
from voice_calendar.services.repositories import AppointmentRepository
from voice_calendar.services.slot_filling import SlotFillingStore
from voice_calendar.tools.base import ToolContext, tool_success
from voice_calendar.tools.catalog import CreatePersonalEventArgs, ScheduleAppointmentArgs

logger = logging.getLogger(__name__)

ALL_DAY_KEYWORDS = ("birthday", "holiday", "anniversary", "vacation", "day off")

DEFAULT_DURATION_MINUTES = {EventKind.MEETING: 30, EventKind.PERSONAL: 60}
GENERIC_TITLES = {EventKind.MEETING: "Meeting", EventKind.PERSONAL: "Personal Event"}
MAX_DERIVED_TITLE_LENGTH = 60

CalendarFactory = Callable[[str], GoogleCalendarClient]


def is_all_day_title(title: str | None) -> bool:
    lowered = (title or "").lower()
    return any(keyword in lowered for keyword in ALL_DAY_KEYWORDS)


def is_sync_ready(appointment: Appointment) -> bool:
    """All-day titles need only a date; everything else needs date and time."""
    if not appointment.date:
        return False
    return is_all_day_title(appointment.title) or bool(appointment.time)


def derive_title(
    title: str | None,
    kind: EventKind,
    attendees: list[str],
    raw_input: str = "",
) -> str:
    """Return a non-empty title for the appointment."""
    if title and title.strip():
        return title.strip()
    if kind == EventKind.MEETING and attendees:
        return f"Meeting with {', '.join(attendees)}"

    words = re.sub(r"\s+", " ", raw_input or "").strip()
    if words:
        if len(words) > MAX_DERIVED_TITLE_LENGTH:
            words = words[:MAX_DERIVED_TITLE_LENGTH].rsplit(" ", 1)[0] + "…"
        return words[0].upper() + words[1:]
    return GENERIC_TITLES[kind]


def _when(appointment: Appointment) -> str:
    return f"on {appointment.date} at {appointment.time}" if appointment.time else f"on {appointment.date}"


class AppointmentScheduler:
    """Handles ``schedule_appointment`` and ``create_personal_event``."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        slot_filling: SlotFillingStore,
        calendar_factory: CalendarFactory = GoogleCalendarClient,
    ) -> None:
        self._appointments = appointments
        self._slot_filling = slot_filling
        self._calendar_factory = calendar_factory

    # ── Tool handlers ────────────────────────────────────────────────

    def schedule_appointment(self, args: ScheduleAppointmentArgs, ctx: ToolContext) -> dict:
        appointment = self._build(
            EventKind.MEETING,
            title=args.title,
            date=args.date,
            time=args.time,
            duration=args.duration,
            attendees=args.attendees,
            location=args.location,
            description=args.description,
            raw_input=ctx.raw_input,
        )
        return self._save_and_sync(appointment, ctx)

    def create_personal_event(self, args: CreatePersonalEventArgs, ctx: ToolContext) -> dict:
        appointment = self._build(
            EventKind.PERSONAL,
            title=args.title,
            date=args.date,
            time=args.time,
            duration=args.duration,
            attendees=[],
            location=args.location,
            description=args.description,
            raw_input=ctx.raw_input,
        )
        return self._save_and_sync(appointment, ctx)

    # ── Internals ────────────────────────────────────────────────────

    def _build(
        self,
        kind: EventKind,
        *,
        title: str | None,
        date: str,
        time: str | None,
        duration: int | None,
        attendees: list[str],
        location: str | None,
        description: str | None,
        raw_input: str,
    ) -> Appointment:
        appointment = Appointment(
            title=GENERIC_TITLES[kind],
            date=date,
            time=time,
            duration=duration,
            attendees=attendees,
            location=location or None,
            description=description or None,
            kind=kind,
        )
        # Attendees are cleaned by the model before the title sees them.
        updates: dict = {"title": derive_title(title, kind, appointment.attendees, raw_input)}
        if appointment.time and not appointment.duration:
            updates["duration"] = DEFAULT_DURATION_MINUTES[kind]
        return appointment.model_copy(update=updates)

    def _save_and_sync(self, appointment: Appointment, ctx: ToolContext) -> dict:
        appointment = self._appointments.add(ctx.user_id, appointment)
        self._slot_filling.clear(ctx.user_id)

        label = f'"{appointment.title}" {_when(appointment)}'
        if not is_sync_ready(appointment):
            message = (
                f"{label} has been saved locally. "
                "Tell me a time and I'll add it to your calendar."
            )
        elif not ctx.calendar_token:
            message = f"{label} has been saved locally. Connect your calendar to sync it."
        else:
            appointment = self._sync(appointment, ctx)
            if appointment.sync_state == SyncState.SYNCED:
                message = f"{label} has been added to your calendar."
            else:
                message = f"{label} has been saved locally, but syncing to your calendar failed."

        return tool_success(
            message,
            appointment=appointment.to_document(),
            sync_state=appointment.sync_state.value,
        )

    def _sync(self, appointment: Appointment, ctx: ToolContext) -> Appointment:
        client = self._calendar_factory(ctx.calendar_token)
        try:
            event_id = client.insert_event(appointment, ctx.timezone)
        except (CalendarAPIError, httpx.HTTPError) as exc:
            logger.warning("Calendar sync failed for appointment %s: %s", appointment.id, exc)
            return self._appointments.record_sync(
                ctx.user_id, appointment, SyncState.SYNC_FAILED, error=str(exc),
            )
        except Exception as exc:
            # The appointment is already saved; the push is best-effort.
            logger.exception("Unexpected calendar sync error for appointment %s", appointment.id)
            return self._appointments.record_sync(
                ctx.user_id, appointment, SyncState.SYNC_FAILED, error=type(exc).__name__,
            )
        finally:
            client.close()
        return self._appointments.record_sync(
            ctx.user_id, appointment, SyncState.SYNCED, external_event_id=event_id,
        )
