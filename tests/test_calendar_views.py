"""Tests for slot tracking, bulk-cancellation preview, listing and availability."""

from __future__ import annotations

import pytest

from voice_calendar.services.repositories import AvailabilityRepository
from voice_calendar.services.slot_filling import PendingCancellationStore, SlotFillingStore
from voice_calendar.tools.base import ToolContext
from voice_calendar.tools.calendar_views import SUGGESTIONS, CalendarViews, summarize_appointment
from voice_calendar.tools.catalog import (
    GetAppointmentsArgs,
    PreviewCancellationArgs,
    SetAvailabilityArgs,
    TrackPartialAppointmentArgs,
)

CTX = ToolContext(user_id="user-1")


@pytest.fixture
def slot_filling(store):
    return SlotFillingStore(store)


@pytest.fixture
def pending(store):
    return PendingCancellationStore(store)


@pytest.fixture
def availability(store):
    return AvailabilityRepository(store)


@pytest.fixture
def views(appointments, availability, slot_filling, pending):
    return CalendarViews(appointments, availability, slot_filling, pending)


class TestTrackPartialAppointment:
    def test_time_suggestions_and_persisted_context(self, views, slot_filling):
        args = TrackPartialAppointmentArgs(
            event_kind="meeting", collected_fields={"date": "2025-07-25"}, missing_fields=["time"],
        )

        result = views.track_partial_appointment(args, CTX)

        assert result["success"] is True
        assert result["suggestions"] == {"time": SUGGESTIONS["time"]}
        assert "14:00" in result["message"]
        saved = slot_filling.get("user-1")
        assert saved.missing_fields == ["time"]
        assert saved.collected_fields == {"date": "2025-07-25"}

    @pytest.mark.parametrize("field", ["date", "duration"])
    def test_suggestions_keyed_by_first_missing_field(self, views, field):
        args = TrackPartialAppointmentArgs(
            event_kind="personal", collected_fields={}, missing_fields=[field, "time"],
        )
        result = views.track_partial_appointment(args, CTX)
        assert list(result["suggestions"]) == [field]

    def test_overwrites_previous_context(self, views, slot_filling):
        views.track_partial_appointment(TrackPartialAppointmentArgs(
            event_kind="meeting", collected_fields={"attendees": ["Sarah"]}, missing_fields=["date"],
        ), CTX)
        views.track_partial_appointment(TrackPartialAppointmentArgs(
            event_kind="meeting",
            collected_fields={"attendees": ["Sarah"], "date": "2025-07-25"},
            missing_fields=["time"],
        ), CTX)
        assert slot_filling.get("user-1").missing_fields == ["time"]


class TestPreviewCancellation:
    def test_persists_pending_and_asks_for_confirmation(self, views, pending):
        args = PreviewCancellationArgs(
            date="2025-07-25",
            candidate_list=[{"title": "Review", "time": "14:00"}, {"title": "Lunch", "attendees": ["Ann"]}],
            cancellation_type="specific",
        )

        result = views.preview_appointments_for_cancellation(args, CTX)

        assert result["success"] is True
        assert "1. Review at 14:00" in result["message"]
        assert "2. Lunch with Ann" in result["message"]
        assert result["message"].endswith("(yes/no)")
        stored = pending.get("user-1")
        assert stored.cancellation_type.value == "specific"
        assert [c.title for c in stored.candidates] == ["Review", "Lunch"]

    def test_empty_candidate_list_uses_stored_appointments(self, views, add_appointment):
        add_appointment("Gym", time="07:00")
        args = PreviewCancellationArgs(date="2025-07-25", candidate_list=[], cancellation_type="all")
        result = views.preview_appointments_for_cancellation(args, CTX)
        assert result["candidates"] == ["Gym at 07:00"]

    def test_nothing_to_preview(self, views, pending):
        args = PreviewCancellationArgs(date="2025-07-25", candidate_list=[], cancellation_type="all")
        result = views.preview_appointments_for_cancellation(args, CTX)
        assert result["success"] is False
        assert pending.get("user-1") is None


class TestGetAppointments:
    def test_sorted_list_with_summary(self, views, add_appointment):
        add_appointment("Review", date="2025-07-26", time="14:00", duration=30, attendees=["John"])
        add_appointment("Gym", date="2025-07-25", time="07:00", duration=60)
        add_appointment("Holiday", date="2025-07-25")

        result = views.get_appointments(
            GetAppointmentsArgs(start_date="2025-07-25", end_date="2025-07-26"), CTX,
        )

        assert [a["title"] for a in result["appointments"]] == ["Holiday", "Gym", "Review"]
        assert result["message"] == (
            "You have 3 appointments: Holiday on 2025-07-25 (all day); "
            "Gym on 2025-07-25 at 07:00 (60 minutes); "
            "Review on 2025-07-26 at 14:00 (30 minutes) with John"
        )

    def test_empty_day(self, views):
        result = views.get_appointments(GetAppointmentsArgs(start_date="2025-07-25"), CTX)
        assert result["success"] is True
        assert result["appointments"] == []
        assert result["message"] == "No appointments found from 2025-07-25."

    def test_summarize_appointment_without_duration(self, add_appointment):
        assert summarize_appointment(add_appointment("Call")) == "Call on 2025-07-25 (all day)"


class TestSetAvailability:
    def test_merges_days(self, views, availability):
        views.set_availability(SetAvailabilityArgs(
            monday={"start": "09:00", "end": "17:00"}, tuesday={"start": "09:00", "end": "17:00"},
        ), CTX)
        result = views.set_availability(SetAvailabilityArgs(
            tuesday={"start": "10am", "end": "4pm"}, saturday={"start": "", "end": ""},
        ), CTX)

        weekly = availability.get("user-1")
        assert weekly.days["monday"].start == "09:00"
        assert weekly.days["tuesday"].start == "10:00"
        assert weekly.days["tuesday"].end == "16:00"
        assert not weekly.days["saturday"].available
        assert result["message"] == (
            "Your availability has been updated: Monday 09:00 to 17:00, "
            "Tuesday 10:00 to 16:00, Saturday unavailable."
        )

    def test_no_days_asks_for_them(self, views):
        result = views.set_availability(SetAvailabilityArgs(), CTX)
        assert result["success"] is False
        assert result["error"] == "validation_error"
