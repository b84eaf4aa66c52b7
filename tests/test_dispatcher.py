"""Tests for the tool dispatcher boundary."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from voice_calendar.models import AppointmentStatus, SyncState
from voice_calendar.services.calendar_client import GoogleCalendarClient
from voice_calendar.tools.catalog import TOOL_ARGS, TOOL_CATALOG
from voice_calendar.tools.dispatcher import ToolDispatcher


@pytest.fixture
def dispatcher(store, calendar_factory):
    return ToolDispatcher(store, calendar_factory)


class TestCatalog:
    def test_every_tool_has_a_schema_and_handler(self, dispatcher):
        names = [t["function"]["name"] for t in TOOL_CATALOG]
        assert sorted(names) == sorted(TOOL_ARGS)
        assert sorted(dispatcher.tool_names) == sorted(TOOL_ARGS)

    @pytest.mark.parametrize(
        ("tool", "required"),
        [
            ("track_partial_appointment", {"event_kind", "collected_fields", "missing_fields"}),
            ("schedule_appointment", {"date"}),
            ("create_personal_event", {"title", "date"}),
            ("cancel_appointment", {"date"}),
            ("cancel_all_appointments_for_date", {"start_date"}),
            ("preview_appointments_for_cancellation", {"date", "candidate_list", "cancellation_type"}),
            ("get_appointments", {"start_date"}),
        ],
    )
    def test_required_fields(self, tool, required):
        schema = next(t for t in TOOL_CATALOG if t["function"]["name"] == tool)
        assert set(schema["function"]["parameters"].get("required", [])) == required

    def test_set_availability_has_no_required_fields(self):
        schema = next(t for t in TOOL_CATALOG if t["function"]["name"] == "set_availability")
        assert not schema["function"]["parameters"].get("required")


class TestExecute:
    def test_routes_json_string_arguments(self, dispatcher, appointments):
        result = dispatcher.execute(
            "schedule_appointment",
            json.dumps({"date": "2025-07-25", "time": "14:00", "title": "Review"}),
            "user-1",
        )
        assert result["success"] is True
        assert len(appointments.list_range("user-1", "2025-07-25")) == 1

    def test_unknown_tool_is_a_structured_failure(self, dispatcher):
        result = dispatcher.execute("delete_everything", {}, "user-1")
        assert result["success"] is False
        assert result["error"] == "unknown_tool"

    def test_missing_date_becomes_clarifying_question(self, dispatcher):
        result = dispatcher.execute("schedule_appointment", {"title": "Review"}, "user-1")
        assert result["success"] is False
        assert result["error"] == "validation_error"
        assert result["missing_fields"] == ["date"]
        assert "the date" in result["message"]

    def test_blank_required_date_is_rejected(self, dispatcher):
        result = dispatcher.execute("cancel_appointment", {"date": "  "}, "user-1")
        assert result["error"] == "validation_error"

    def test_malformed_json(self, dispatcher):
        result = dispatcher.execute("get_appointments", "{not json", "user-1")
        assert result["error"] == "invalid_arguments"

    def test_unexpected_error_does_not_leak(self, dispatcher):
        with patch(
            "voice_calendar.services.repositories.AppointmentRepository.list_range",
            side_effect=RuntimeError("disk on fire"),
        ):
            result = dispatcher.execute("get_appointments", {"start_date": "2025-07-25"}, "user-1")
        assert result == {
            "success": False,
            "message": "Something went wrong while handling that request.",
            "error": "internal_error",
        }

    def test_extra_arguments_are_ignored(self, dispatcher):
        result = dispatcher.execute(
            "get_appointments", {"start_date": "2025-07-25", "verbose": True}, "user-1",
        )
        assert result["success"] is True

    def test_scenario_cancel_on_empty_date(self, dispatcher):
        result = dispatcher.execute("cancel_appointment", {"date": "2025-07-25"}, "user-1")
        assert result == {"success": False, "message": "No appointments found for 2025-07-25"}

    def test_raw_input_reaches_title_fallback(self, dispatcher, appointments):
        dispatcher.execute(
            "schedule_appointment", {"date": "2025-07-25"}, "user-1", raw_input="coffee chat",
        )
        assert appointments.list_range("user-1", "2025-07-25")[0].title == "Coffee chat"


# ── Calendar provider faults ─────────────────────────────────────────


def _html_calendar_factory(token: str) -> GoogleCalendarClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>"))
    return GoogleCalendarClient(token, "https://calendar.test/v3", transport=transport)


class TestCalendarProviderFaults:
    @pytest.fixture
    def html_dispatcher(self, store):
        return ToolDispatcher(store, _html_calendar_factory)

    def test_unreadable_calendar_reply_does_not_fail_creation(self, html_dispatcher, appointments):
        result = html_dispatcher.execute(
            "schedule_appointment",
            {"date": "2025-07-25", "time": "14:00", "title": "Review"},
            "user-1",
            "tok",
        )

        assert result["success"] is True
        assert result["sync_state"] == SyncState.SYNC_FAILED.value
        assert "sync" in result["message"]
        saved = appointments.list_range("user-1", "2025-07-25")
        assert [(a.title, a.sync_state) for a in saved] == [("Review", SyncState.SYNC_FAILED)]

    def test_unreadable_calendar_reply_is_tallied_on_bulk_cancel(
        self, html_dispatcher, appointments, add_appointment,
    ):
        review = add_appointment("Review", time="14:00", external_event_id="evt-1")

        result = html_dispatcher.execute(
            "cancel_all_appointments_for_date", {"start_date": "2025-07-25"}, "user-1", "tok",
        )

        assert result["success"] is True
        assert result["cancelled_count"] == 1
        assert result["calendar_failed"] == 1
        assert appointments.get("user-1", review.id).status == AppointmentStatus.CANCELLED

    def test_decode_error_inside_handler_is_not_blamed_on_arguments(self, dispatcher):
        with patch(
            "voice_calendar.services.repositories.AppointmentRepository.list_range",
            side_effect=json.JSONDecodeError("Expecting value", "<html>", 0),
        ):
            result = dispatcher.execute("get_appointments", {"start_date": "2025-07-25"}, "user-1")
        assert result["error"] == "internal_error"
