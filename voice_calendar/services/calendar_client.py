"""HTTP client for the Google Calendar API v3 with retry and timeout handling.

API docs: https://developers.google.com/calendar/api/v3/reference/events
Every request carries the caller's OAuth access token as a Bearer token.
Obtaining and refreshing that token happens outside this package; a
client instance is built per turn from the token the caller supplied.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Any

import httpx

from voice_calendar.config import GOOGLE_CALENDAR_BASE_URL, GOOGLE_CALENDAR_ID
from voice_calendar.models import DATE_FORMAT, Appointment, EventKind
from voice_calendar.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

DEFAULT_MEETING_MINUTES = 30
DEFAULT_PERSONAL_MINUTES = 60


class CalendarAPIError(Exception):
    """Raised when a Google Calendar call fails after all retries.

    This is the core's ``ExternalSyncFailure``: it is recorded on the
    appointment and reported, never allowed to fail the local write.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def build_event_body(appointment: Appointment, timezone: str) -> dict[str, Any]:
    """Translate an appointment into a Google Calendar event resource."""
    body: dict[str, Any] = {"summary": appointment.title}

    if appointment.time:
        start = datetime.strptime(f"{appointment.date} {appointment.time}", f"{DATE_FORMAT} %H:%M")
        default = (
            DEFAULT_PERSONAL_MINUTES if appointment.kind == EventKind.PERSONAL
            else DEFAULT_MEETING_MINUTES
        )
        end = start + timedelta(minutes=appointment.duration or default)
        body["start"] = {"dateTime": start.isoformat(), "timeZone": timezone}
        body["end"] = {"dateTime": end.isoformat(), "timeZone": timezone}
    else:
        day = datetime.strptime(appointment.date, DATE_FORMAT).date()
        body["start"] = {"date": day.isoformat()}
        body["end"] = {"date": (day + timedelta(days=1)).isoformat()}

    # Attendees are display names, not addresses, so they go in the text.
    notes = [appointment.description] if appointment.description else []
    if appointment.attendees:
        notes.append(f"Attendees: {', '.join(appointment.attendees)}")
    if notes:
        body["description"] = "\n".join(notes)
    if appointment.location:
        body["location"] = appointment.location
    return body


class GoogleCalendarClient:
    """Thin wrapper around the Calendar events endpoints with automatic retries."""

    def __init__(
        self,
        access_token: str,
        base_url: str | None = None,
        *,
        calendar_id: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._base_url = base_url or GOOGLE_CALENDAR_BASE_URL
        self._calendar_id = calendar_id or GOOGLE_CALENDAR_ID
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GoogleCalendarClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        ok_statuses: tuple[int, ...] = (),
    ) -> dict[str, Any]:
        """Execute an HTTP request with exponential-backoff retries.

        Statuses listed in ``ok_statuses`` are treated as success even
        though they are 4xx (e.g. deleting an event that is already gone).
        """
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.request(method, path, json=json_body)
                if response.status_code in ok_statuses:
                    return {}
                if response.status_code >= 500:
                    raise CalendarAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise CalendarAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code == 204 or not response.content:
                    return {}
                try:
                    data = response.json()
                except ValueError as exc:
                    # A proxy or captive portal can answer 2xx with HTML.
                    raise CalendarAPIError(
                        f"Unreadable response body ({response.status_code}): {response.text[:200]}",
                        status_code=response.status_code,
                    ) from exc
                if not isinstance(data, dict):
                    raise CalendarAPIError(
                        f"Unexpected response body ({response.status_code})",
                        status_code=response.status_code,
                    )
                return data

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Calendar API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except CalendarAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Calendar API server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise

            time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise CalendarAPIError(
            f"Calendar API request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── Public API methods ───────────────────────────────────────────

    def insert_event(self, appointment: Appointment, timezone: str = "UTC") -> str:
        """Create the calendar event for *appointment* and return its event id."""
        with metrics.track("google_calendar", "insert_event"):
            data = self._request(
                "POST",
                f"/calendars/{self._calendar_id}/events",
                json_body=build_event_body(appointment, timezone),
            )
        event_id = data.get("id")
        if not event_id:
            raise CalendarAPIError("Calendar API response did not include an event id")
        logger.info("Calendar: inserted event %s for appointment %s", event_id, appointment.id)
        return event_id

    def delete_event(self, event_id: str) -> None:
        """Delete an event.  A 404/410 means it is already gone and counts as success."""
        with metrics.track("google_calendar", "delete_event"):
            self._request(
                "DELETE",
                f"/calendars/{self._calendar_id}/events/{event_id}",
                ok_statuses=(404, 410),
            )
        logger.info("Calendar: deleted event %s", event_id)
