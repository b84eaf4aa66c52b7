"""Cancellation: matching a loose description to stored appointments.

Matching rules for ``cancel_appointment`` (all comparisons case-insensitive):

1. If the query title equals one or more appointment titles, only those
   are cancelled.
2. Otherwise an appointment matches when ANY of these hold:
   the query title contains its title or vice versa, one of its title
   words (3+ letters) appears in the query title, the query time equals
   its time, or a query attendee name is contained in one of its
   attendee names.
3. With no match, titles scoring above ``SUGGESTION_THRESHOLD`` on
   normalised edit-distance similarity are offered as suggestions.
4. Otherwise the day's appointments are listed, or the day is reported
   empty.

Local cancellation is one atomic batch.  Deleting the linked calendar
events happens afterwards, best effort, in parallel batches of
``CALENDAR_DELETE_BATCH_SIZE``; a failed delete never rolls back the
local status change.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

import httpx

from voice_calendar.config import CALENDAR_DELETE_BATCH_SIZE
from voice_calendar.models import Appointment
from voice_calendar.services.calendar_client import CalendarAPIError, GoogleCalendarClient
from voice_calendar.services.repositories import AppointmentRepository
from voice_calendar.services.similarity import similarity
from voice_calendar.services.slot_filling import PendingCancellationStore
from voice_calendar.tools.base import ToolContext, plural, tool_failure, tool_success
from voice_calendar.tools.catalog import CancelAllAppointmentsArgs, CancelAppointmentArgs
from voice_calendar.tools.scheduling import CalendarFactory

logger = logging.getLogger(__name__)

SUGGESTION_THRESHOLD = 0.30
MIN_TITLE_WORD_LENGTH = 3


@dataclass
class ExternalDeleteTally:
    deleted: int = 0
    failed: int = 0
    # Linked events left alone because the turn had no calendar token.
    skipped: int = 0

    def note(self) -> str:
        parts = []
        if self.deleted:
            parts.append(f"Removed {plural(self.deleted, 'event')} from your calendar.")
        if self.failed:
            parts.append(f"{plural(self.failed, 'calendar event')} could not be removed from your calendar.")
        if self.skipped:
            parts.append(
                f"{plural(self.skipped, 'calendar event')} still on your calendar; "
                "connect your calendar to remove them too."
            )
        return " ".join(parts)


# ── Matching ─────────────────────────────────────────────────────────


def _title_matches(appointment_title: str, query_title: str) -> bool:
    a, q = appointment_title.lower(), query_title.lower()
    if q in a or a in q:
        return True
    return any(len(word) >= MIN_TITLE_WORD_LENGTH and word in q for word in a.split())


def matches(
    appointment: Appointment,
    title: str | None = None,
    time: str | None = None,
    attendees: list[str] | None = None,
) -> bool:
    """True when any of the supplied criteria identifies *appointment*."""
    if title and title.strip() and _title_matches(appointment.title, title.strip()):
        return True
    if time and appointment.time == time:
        return True
    for wanted in attendees or []:
        wanted_lower = wanted.strip().lower()
        if wanted_lower and any(wanted_lower in a.lower() for a in appointment.attendees):
            return True
    return False


def find_matches(
    candidates: list[Appointment],
    title: str | None = None,
    time: str | None = None,
    attendees: list[str] | None = None,
) -> list[Appointment]:
    if title and title.strip():
        exact = [a for a in candidates if a.title.lower() == title.strip().lower()]
        if exact:
            return exact
    return [a for a in candidates if matches(a, title, time, attendees)]


def suggest(candidates: list[Appointment], title: str | None) -> list[Appointment]:
    """Appointments whose title is similar enough to be a likely typo or paraphrase."""
    if not title or not title.strip():
        return []
    query = title.strip().lower()
    return [a for a in candidates if similarity(query, a.title.lower()) > SUGGESTION_THRESHOLD]


# ── Resolver ─────────────────────────────────────────────────────────


class AppointmentResolver:
    """Handles ``cancel_appointment`` and ``cancel_all_appointments_for_date``."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        pending: PendingCancellationStore,
        calendar_factory: CalendarFactory = GoogleCalendarClient,
        batch_size: int = CALENDAR_DELETE_BATCH_SIZE,
    ) -> None:
        self._appointments = appointments
        self._pending = pending
        self._calendar_factory = calendar_factory
        self._batch_size = max(1, batch_size)

    def cancel_appointment(self, args: CancelAppointmentArgs, ctx: ToolContext) -> dict:
        candidates = self._appointments.list_range(ctx.user_id, args.date)
        if not candidates:
            return tool_failure(f"No appointments found for {args.date}")

        query_label = args.title or "appointment"
        matched = find_matches(candidates, args.title, args.time, args.attendees)
        if matched:
            cancelled = self._appointments.cancel_many(ctx.user_id, matched)
            tally = self._delete_external(cancelled, ctx.calendar_token)
            self._pending.clear(ctx.user_id)
            message = (
                f"Successfully cancelled {plural(len(cancelled), 'appointment')} "
                f'matching "{query_label}" on {args.date}.'
            )
            if tally.note():
                message = f"{message} {tally.note()}"
            return tool_success(
                message,
                cancelled_count=len(cancelled),
                cancelled=[a.describe() for a in cancelled],
                calendar_deleted=tally.deleted,
                calendar_failed=tally.failed,
            )

        suggestions = suggest(candidates, args.title)
        if suggestions:
            described = [a.describe() for a in suggestions]
            return tool_failure(
                f'No exact match found for "{query_label}". '
                f"Did you mean one of these? {', '.join(described)}",
                suggestions=described,
            )

        available = [a.describe() for a in candidates]
        return tool_failure(
            f'No appointments found matching "{query_label}". '
            f"Available appointments on {args.date}: {', '.join(available)}",
            available=available,
        )

    def cancel_all(self, args: CancelAllAppointmentsArgs, ctx: ToolContext) -> dict:
        end_date = args.end_date or args.start_date
        span = args.start_date if end_date == args.start_date else f"{args.start_date} to {end_date}"

        appointments = self._appointments.list_range(ctx.user_id, args.start_date, end_date)
        if not appointments:
            return tool_failure(f"No appointments found for {span}", cancelled_count=0)

        cancelled = self._appointments.cancel_many(ctx.user_id, appointments)
        tally = self._delete_external(cancelled, ctx.calendar_token)
        self._pending.clear(ctx.user_id)

        message = f"Cancelled all {plural(len(cancelled), 'appointment')} for {span}."
        if tally.note():
            message = f"{message} {tally.note()}"
        return tool_success(
            message,
            cancelled_count=len(cancelled),
            cancelled=[a.describe() for a in cancelled],
            calendar_deleted=tally.deleted,
            calendar_failed=tally.failed,
        )

    # ── External calendar clean-up ───────────────────────────────────

    def _delete_external(
        self, appointments: list[Appointment], calendar_token: str | None,
    ) -> ExternalDeleteTally:
        linked = [a for a in appointments if a.external_event_id]
        if not linked:
            return ExternalDeleteTally()
        if not calendar_token:
            return ExternalDeleteTally(skipped=len(linked))

        tally = ExternalDeleteTally()
        client = self._calendar_factory(calendar_token)
        try:
            with ThreadPoolExecutor(max_workers=self._batch_size) as pool:
                for start in range(0, len(linked), self._batch_size):
                    chunk = linked[start : start + self._batch_size]
                    futures = {
                        pool.submit(client.delete_event, a.external_event_id): a for a in chunk
                    }
                    for future in as_completed(futures):
                        try:
                            future.result()
                            tally.deleted += 1
                        except (CalendarAPIError, httpx.HTTPError) as exc:
                            tally.failed += 1
                            logger.warning(
                                "Could not delete calendar event %s for appointment %s: %s",
                                futures[future].external_event_id, futures[future].id, exc,
                            )
                        except Exception:
                            # Local cancellation is already committed.
                            tally.failed += 1
                            logger.exception(
                                "Unexpected error deleting calendar event %s for appointment %s",
                                futures[future].external_event_id, futures[future].id,
                            )
        finally:
            client.close()
        return tally
