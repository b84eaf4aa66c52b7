"""Tests for the appointment creation policy and sync tiering."""

from __future__ import annotations

import httpx
import pytest

from voice_calendar.models import Appointment, EventKind, PartialAppointmentContext, SyncState
from voice_calendar.services.calendar_client import CalendarAPIError
from voice_calendar.services.slot_filling import SlotFillingStore
from voice_calendar.tools.base import ToolContext
from voice_calendar.tools.catalog import CreatePersonalEventArgs, ScheduleAppointmentArgs
from voice_calendar.tools.scheduling import (
    AppointmentScheduler,
    derive_title,
    is_all_day_title,
    is_sync_ready,
)


@pytest.fixture
def slot_filling(store):
    return SlotFillingStore(store)


@pytest.fixture
def scheduler(appointments, slot_filling, calendar_factory):
    return AppointmentScheduler(appointments, slot_filling, calendar_factory)


def _ctx(token: str | None = None, raw_input: str = "") -> ToolContext:
    return ToolContext(user_id="user-1", calendar_token=token, raw_input=raw_input)


# ── Policy helpers ───────────────────────────────────────────────────


class TestDeriveTitle:
    def test_keeps_given_title(self):
        assert derive_title("  Review ", EventKind.MEETING, []) == "Review"

    def test_meeting_with_attendees(self):
        assert derive_title("", EventKind.MEETING, ["John", "Sarah"]) == "Meeting with John, Sarah"

    def test_falls_back_to_raw_input(self):
        assert derive_title(None, EventKind.PERSONAL, [], "pick up dry cleaning") == "Pick up dry cleaning"

    def test_long_raw_input_is_shortened(self):
        title = derive_title(None, EventKind.MEETING, [], "word " * 40)
        assert len(title) <= 61
        assert title.endswith("…")

    @pytest.mark.parametrize(("kind", "expected"), [
        (EventKind.MEETING, "Meeting"),
        (EventKind.PERSONAL, "Personal Event"),
    ])
    def test_generic_fallback(self, kind, expected):
        assert derive_title("   ", kind, [], "") == expected


class TestSyncReadiness:
    @pytest.mark.parametrize("title", ["Mom's Birthday", "Public holiday", "Vacation in Porto", "Day off"])
    def test_all_day_titles_need_only_a_date(self, title):
        assert is_all_day_title(title)
        assert is_sync_ready(Appointment(title=title, date="2025-07-25"))

    def test_other_titles_need_a_time(self):
        assert not is_all_day_title("Dentist")
        assert not is_sync_ready(Appointment(title="Dentist", date="2025-07-25"))
        assert is_sync_ready(Appointment(title="Dentist", date="2025-07-25", time="10:00"))


# ── Handlers ─────────────────────────────────────────────────────────


class TestScheduleAppointment:
    def test_synced_with_token_and_partial_cleared(
        self, scheduler, appointments, slot_filling, calendar_client,
    ):
        slot_filling.save("user-1", PartialAppointmentContext(
            event_kind="meeting", collected_fields={"date": "2025-07-25"}, missing_fields=["time"],
        ))
        args = ScheduleAppointmentArgs(date="2025-07-25", time="14:00", duration=30, title="Review")

        result = scheduler.schedule_appointment(args, _ctx(token="tok"))

        assert result["success"] is True
        assert result["sync_state"] == "synced"
        assert "added to your calendar" in result["message"]
        stored = appointments.list_range("user-1", "2025-07-25")
        assert len(stored) == 1
        assert stored[0].status.value == "scheduled"
        assert stored[0].sync_state == SyncState.SYNCED
        assert stored[0].external_event_id == "evt-123"
        assert slot_filling.get("user-1") is None
        calendar_client.close.assert_called_once()

    def test_missing_duration_defaults_to_thirty_minutes(self, scheduler, appointments):
        scheduler.schedule_appointment(ScheduleAppointmentArgs(date="2025-07-25", time="10:00"), _ctx())
        assert appointments.list_range("user-1", "2025-07-25")[0].duration == 30

    def test_missing_time_is_saved_locally_without_duration(self, scheduler, appointments, calendar_factory):
        result = scheduler.schedule_appointment(
            ScheduleAppointmentArgs(date="2025-07-25", attendees=["Sarah"], duration=45), _ctx(token="tok"),
        )
        stored = appointments.list_range("user-1", "2025-07-25")[0]
        assert stored.title == "Meeting with Sarah"
        assert stored.time is None
        assert stored.duration is None
        assert "saved locally" in result["message"]
        calendar_factory.assert_not_called()

    def test_without_token_is_saved_locally(self, scheduler, calendar_factory):
        result = scheduler.schedule_appointment(
            ScheduleAppointmentArgs(date="2025-07-25", time="09:00", title="Standup"), _ctx(),
        )
        assert result["sync_state"] == "not_synced"
        assert "Connect your calendar" in result["message"]
        calendar_factory.assert_not_called()

    @pytest.mark.parametrize("error", [
        CalendarAPIError("Client error 403", status_code=403),
        httpx.ConnectError("refused"),
        ValueError("Expecting value: line 1 column 1"),
    ])
    def test_sync_failure_keeps_the_record(self, scheduler, appointments, calendar_client, error):
        calendar_client.insert_event.side_effect = error
        result = scheduler.schedule_appointment(
            ScheduleAppointmentArgs(date="2025-07-25", time="09:00", title="Standup"), _ctx(token="tok"),
        )
        assert result["success"] is True
        assert "syncing to your calendar failed" in result["message"]
        stored = appointments.list_range("user-1", "2025-07-25")[0]
        assert stored.sync_state == SyncState.SYNC_FAILED
        assert stored.sync_error
        calendar_client.close.assert_called_once()

    def test_vague_time_is_normalised(self, scheduler, appointments):
        scheduler.schedule_appointment(
            ScheduleAppointmentArgs(date="2025-07-25", time="afternoon", title="Call"), _ctx(),
        )
        assert appointments.list_range("user-1", "2025-07-25")[0].time == "14:00"

    def test_blank_title_derived_from_raw_input(self, scheduler, appointments):
        scheduler.schedule_appointment(
            ScheduleAppointmentArgs(date="2025-07-25", title=""), _ctx(raw_input="sync about launch"),
        )
        assert appointments.list_range("user-1", "2025-07-25")[0].title == "Sync about launch"


class TestCreatePersonalEvent:
    def test_personal_default_duration_is_an_hour(self, scheduler, appointments):
        scheduler.create_personal_event(
            CreatePersonalEventArgs(title="Gym", date="2025-07-25", time="07:00"), _ctx(),
        )
        stored = appointments.list_range("user-1", "2025-07-25")[0]
        assert stored.kind == EventKind.PERSONAL
        assert stored.duration == 60

    def test_birthday_without_time_syncs(self, scheduler, appointments, calendar_client):
        result = scheduler.create_personal_event(
            CreatePersonalEventArgs(title="Mom's birthday", date="2025-07-25"), _ctx(token="tok"),
        )
        assert result["sync_state"] == "synced"
        calendar_client.insert_event.assert_called_once()
