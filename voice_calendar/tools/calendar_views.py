"""Slot tracking, bulk-cancellation preview, listing and weekly availability."""

from __future__ import annotations

import logging

from voice_calendar.models import (
    Appointment,
    CancellationCandidate,
    CancellationType,
    DayAvailability,
    EventKind,
    PartialAppointmentContext,
    PendingBulkCancellation,
    appointment_sort_key,
)
from voice_calendar.services.repositories import AppointmentRepository, AvailabilityRepository
from voice_calendar.services.slot_filling import PendingCancellationStore, SlotFillingStore
from voice_calendar.tools.base import ToolContext, plural, tool_failure, tool_success
from voice_calendar.tools.catalog import (
    GetAppointmentsArgs,
    PreviewCancellationArgs,
    SetAvailabilityArgs,
    TrackPartialAppointmentArgs,
)

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Follow-up values offered for the first missing field.
SUGGESTIONS: dict[str, list[str]] = {
    "time": ["09:00", "10:00", "11:00", "14:00", "15:00", "16:00"],
    "date": ["today", "tomorrow", "the day after tomorrow", "next Monday"],
    "duration": ["15 minutes", "30 minutes", "45 minutes", "1 hour", "2 hours"],
}

_QUESTIONS = {
    "time": "What time should it start?",
    "date": "Which day should it be on?",
    "duration": "How long should it last?",
    "title": "What should I call it?",
    "attendees": "Who will be attending?",
}


def summarize_appointment(appointment: Appointment) -> str:
    """``Review on 2025-07-25 at 14:00 (30 minutes) with John``."""
    if appointment.time:
        text = f"{appointment.title} on {appointment.date} at {appointment.time}"
        if appointment.duration:
            text += f" ({appointment.duration} minutes)"
    else:
        text = f"{appointment.title} on {appointment.date} (all day)"
    if appointment.attendees:
        text += f" with {', '.join(appointment.attendees)}"
    return text


def _span(start_date: str, end_date: str | None) -> str:
    if end_date and end_date != start_date:
        return f"{start_date} to {end_date}"
    return start_date


class CalendarViews:
    def __init__(
        self,
        appointments: AppointmentRepository,
        availability: AvailabilityRepository,
        slot_filling: SlotFillingStore,
        pending: PendingCancellationStore,
    ) -> None:
        self._appointments = appointments
        self._availability = availability
        self._slot_filling = slot_filling
        self._pending = pending

    # ── track_partial_appointment ────────────────────────────────────

    def track_partial_appointment(self, args: TrackPartialAppointmentArgs, ctx: ToolContext) -> dict:
        missing = [f.strip() for f in args.missing_fields if f and f.strip()]
        context = PartialAppointmentContext(
            event_kind=EventKind(args.event_kind),
            collected_fields=args.collected_fields,
            missing_fields=missing,
        )
        self._slot_filling.save(ctx.user_id, context)

        if not missing:
            return tool_success(
                "Noted the appointment details so far.", missing_fields=[], suggestions={},
            )

        first = missing[0]
        suggestions = {first: SUGGESTIONS[first]} if first in SUGGESTIONS else {}
        question = _QUESTIONS.get(first, f"What is the {first.replace('_', ' ')}?")
        if suggestions:
            question = f"{question} For example: {', '.join(suggestions[first])}."
        return tool_success(question, missing_fields=missing, suggestions=suggestions)

    # ── preview_appointments_for_cancellation ────────────────────────

    def preview_appointments_for_cancellation(
        self, args: PreviewCancellationArgs, ctx: ToolContext,
    ) -> dict:
        candidates = [
            CancellationCandidate(title=c.title, time=c.time, attendees=c.attendees)
            for c in args.candidate_list
        ]
        if not candidates:
            # The assistant sometimes previews "everything" without listing it.
            candidates = [
                CancellationCandidate(title=a.title, time=a.time, attendees=a.attendees)
                for a in self._appointments.list_range(ctx.user_id, args.date, args.end_date)
            ]
        span = _span(args.date, args.end_date)
        if not candidates:
            self._pending.clear(ctx.user_id)
            return tool_failure(f"No appointments found for {span}", candidates=[])

        pending = PendingBulkCancellation(
            date=args.date,
            end_date=args.end_date if args.end_date != args.date else None,
            candidates=candidates,
            cancellation_type=CancellationType(args.cancellation_type),
        )
        self._pending.save(ctx.user_id, pending)

        lines = [f"{i}. {c.describe()}" for i, c in enumerate(candidates, start=1)]
        message = (
            f"These {plural(len(candidates), 'appointment')} on {span} would be cancelled:\n"
            + "\n".join(lines)
            + "\nShould I go ahead and cancel them? (yes/no)"
        )
        return tool_success(
            message,
            candidates=[c.describe() for c in candidates],
            cancellation_type=pending.cancellation_type.value,
            awaiting_confirmation=True,
        )

    # ── get_appointments ─────────────────────────────────────────────

    def get_appointments(self, args: GetAppointmentsArgs, ctx: ToolContext) -> dict:
        end_date = args.end_date or args.start_date
        appointments = sorted(
            self._appointments.list_range(ctx.user_id, args.start_date, end_date),
            key=appointment_sort_key,
        )
        payload = [a.to_document() for a in appointments]
        if not appointments:
            return tool_success(
                f"No appointments found from {_span(args.start_date, end_date)}.",
                appointments=payload,
            )
        summary = "; ".join(summarize_appointment(a) for a in appointments)
        return tool_success(
            f"You have {plural(len(appointments), 'appointment')}: {summary}",
            appointments=payload,
        )

    # ── set_availability ─────────────────────────────────────────────

    def set_availability(self, args: SetAvailabilityArgs, ctx: ToolContext) -> dict:
        days: dict[str, DayAvailability] = {}
        for day in WEEKDAYS:
            window = getattr(args, day)
            if window is not None:
                days[day] = DayAvailability(start=window.start, end=window.end)
        if not days:
            return tool_failure(
                "Which days and hours are you available? For example: Monday 09:00 to 17:00.",
                error="validation_error",
                missing_fields=["days"],
            )

        weekly = self._availability.merge(ctx.user_id, days)
        logger.info("Updated availability for %s: %s", ctx.user_id, sorted(days))

        parts = []
        for day in WEEKDAYS:
            if day not in weekly.days:
                continue
            slot = weekly.days[day]
            hours = f"{slot.start} to {slot.end}" if slot.available else "unavailable"
            parts.append(f"{day.capitalize()} {hours}")
        return tool_success(
            f"Your availability has been updated: {', '.join(parts)}.",
            availability={day: slot.model_dump() for day, slot in weekly.days.items()},
        )
