"""Routes one assistant tool call to its handler.

``ToolDispatcher.execute`` never raises.  Whatever goes wrong inside a
handler (bad arguments, an unknown tool name, a storage error) comes back
as a structured ``{"success": False, "message": ..., "error": ...}`` result,
so one broken call cannot abort the rest of its batch or the turn.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

import pydantic

from voice_calendar.errors import UnknownTool, ValidationError
from voice_calendar.services.calendar_client import GoogleCalendarClient
from voice_calendar.services.metrics import metrics
from voice_calendar.services.repositories import AppointmentRepository, AvailabilityRepository
from voice_calendar.services.slot_filling import PendingCancellationStore, SlotFillingStore
from voice_calendar.services.store import DocumentStore
from voice_calendar.tools.base import ToolContext, tool_failure
from voice_calendar.tools.calendar_views import CalendarViews
from voice_calendar.tools.cancellation import AppointmentResolver
from voice_calendar.tools.catalog import TOOL_ARGS
from voice_calendar.tools.scheduling import AppointmentScheduler, CalendarFactory

logger = logging.getLogger(__name__)

Handler = Callable[[Any, ToolContext], dict]

_FIELD_PROMPTS = {
    "date": "the date (YYYY-MM-DD)",
    "start_date": "the start date (YYYY-MM-DD)",
    "end_date": "the end date (YYYY-MM-DD)",
    "time": "the time (HH:MM)",
    "title": "a title",
    "duration": "the duration in minutes",
}


def _clarifying_question(fields: list[str]) -> str:
    wanted = [_FIELD_PROMPTS.get(f, f.replace("_", " ")) for f in fields]
    if not wanted:
        return "Some details were unclear. Could you rephrase the request?"
    if len(wanted) == 1:
        return f"I need {wanted[0]} to do that. Could you tell me?"
    return f"I need {', '.join(wanted[:-1])} and {wanted[-1]} to do that. Could you tell me?"


def _invalid_fields(exc: pydantic.ValidationError) -> list[str]:
    fields: list[str] = []
    for error in exc.errors():
        if error["loc"] and str(error["loc"][0]) not in fields:
            fields.append(str(error["loc"][0]))
    return fields


class ToolDispatcher:
    """Executes catalog tools against the per-user stores."""

    def __init__(
        self,
        store: DocumentStore,
        calendar_factory: CalendarFactory = GoogleCalendarClient,
    ) -> None:
        appointments = AppointmentRepository(store)
        slot_filling = SlotFillingStore(store)
        pending = PendingCancellationStore(store)

        scheduler = AppointmentScheduler(appointments, slot_filling, calendar_factory)
        resolver = AppointmentResolver(appointments, pending, calendar_factory)
        views = CalendarViews(appointments, AvailabilityRepository(store), slot_filling, pending)

        self._handlers: dict[str, Handler] = {
            "track_partial_appointment": views.track_partial_appointment,
            "schedule_appointment": scheduler.schedule_appointment,
            "create_personal_event": scheduler.create_personal_event,
            "cancel_appointment": resolver.cancel_appointment,
            "cancel_all_appointments_for_date": resolver.cancel_all,
            "preview_appointments_for_cancellation": views.preview_appointments_for_cancellation,
            "get_appointments": views.get_appointments,
            "set_availability": views.set_availability,
        }
        missing = set(TOOL_ARGS) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Tools without a handler: {sorted(missing)}")

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    def execute(
        self,
        tool_name: str,
        args: dict[str, Any] | str | None,
        user_id: str,
        calendar_token: str | None = None,
        *,
        timezone: str = "UTC",
        raw_input: str = "",
    ) -> dict[str, Any]:
        """Run one tool call and return its structured result."""
        ctx = ToolContext(
            user_id=user_id, calendar_token=calendar_token, timezone=timezone, raw_input=raw_input,
        )
        t0 = time.perf_counter()

        # Argument decoding is kept apart from the handler call so that an
        # error raised inside a handler is never reported as bad arguments.
        try:
            handler, parsed = self._prepare(tool_name, args)
        except UnknownTool as exc:
            logger.warning("Assistant requested unknown tool %r", exc.tool_name)
            return tool_failure(
                f"'{exc.tool_name}' is not an available tool.", error="unknown_tool",
            )
        except json.JSONDecodeError as exc:
            logger.warning("Malformed arguments for %s: %s", tool_name, exc)
            return tool_failure(
                "The tool arguments could not be read. Please try again.",
                error="invalid_arguments",
            )
        except pydantic.ValidationError as exc:
            fields = _invalid_fields(exc)
            logger.info("Invalid arguments for %s: %s", tool_name, fields)
            return tool_failure(
                _clarifying_question(fields), error="validation_error", missing_fields=fields,
            )

        try:
            logger.debug("Dispatching %s for %s", tool_name, user_id)
            result = handler(parsed, ctx)
        except ValidationError as exc:
            logger.info("Validation failed for %s: %s", tool_name, exc)
            result = tool_failure(
                _clarifying_question(exc.missing_fields),
                error="validation_error",
                missing_fields=exc.missing_fields,
            )
        except Exception as exc:
            logger.exception("Tool %s failed for user %s", tool_name, user_id)
            metrics.record_failure(
                "tools", tool_name, error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            return tool_failure(
                "Something went wrong while handling that request.", error="internal_error",
            )

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("tools", tool_name, latency_ms=elapsed)
        logger.info(
            "Tool %s for %s -> success=%s (%.0fms)", tool_name, user_id, result.get("success"), elapsed,
        )
        return result

    def _prepare(
        self, tool_name: str, args: dict[str, Any] | str | None,
    ) -> tuple[Handler, pydantic.BaseModel]:
        handler = self._handlers.get(tool_name)
        if handler is None:
            raise UnknownTool(tool_name)

        if isinstance(args, str):
            args = json.loads(args) if args.strip() else {}
        if not isinstance(args, dict):
            args = {}
        return handler, TOOL_ARGS[tool_name].model_validate(args)
