"""Typed persistence on top of the document store.

Each repository owns the collection layout for one record type and
converts between stored dicts and the pydantic models in
``voice_calendar.models``.
"""

from __future__ import annotations

import logging

from voice_calendar.models import (
    Appointment,
    AppointmentStatus,
    AssistantIdentity,
    ConversationThread,
    DayAvailability,
    SyncState,
    WeeklyAvailability,
    utcnow,
)
from voice_calendar.services.store import DocumentStore

logger = logging.getLogger(__name__)


def _user_collection(user_id: str, name: str) -> str:
    return f"users/{user_id}/{name}"


# ── Appointments ─────────────────────────────────────────────────────


class AppointmentRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def add(self, user_id: str, appointment: Appointment) -> Appointment:
        self._store.set(
            _user_collection(user_id, "appointments"), appointment.id, appointment.to_document(),
        )
        logger.info(
            "Saved appointment %s for user %s (%s on %s)",
            appointment.id, user_id, appointment.title, appointment.date,
        )
        return appointment

    def get(self, user_id: str, appointment_id: str) -> Appointment | None:
        doc = self._store.get(_user_collection(user_id, "appointments"), appointment_id)
        return Appointment.from_document(doc) if doc else None

    def list_range(
        self,
        user_id: str,
        start_date: str,
        end_date: str | None = None,
        *,
        include_cancelled: bool = False,
    ) -> list[Appointment]:
        """Appointments with ``start_date <= date <= end_date``, ordered by (date, status, time)."""
        filters = [("date", ">=", start_date), ("date", "<=", end_date or start_date)]
        if not include_cancelled:
            filters.append(("status", "==", AppointmentStatus.SCHEDULED.value))
        docs = self._store.query(
            _user_collection(user_id, "appointments"),
            filters=filters,
            order_by=["date", "status", "time"],
        )
        return [Appointment.from_document(d) for d in docs]

    def record_sync(
        self,
        user_id: str,
        appointment: Appointment,
        state: SyncState,
        *,
        external_event_id: str | None = None,
        error: str | None = None,
    ) -> Appointment:
        """Attach the outcome of a calendar sync attempt to an existing record."""
        now = utcnow()
        fields = {
            "sync_state": state.value,
            "sync_error": error,
            "external_event_id": external_event_id,
            "updated_at": now.isoformat(),
        }
        self._store.update(_user_collection(user_id, "appointments"), appointment.id, fields)
        return appointment.model_copy(update={
            "sync_state": state,
            "sync_error": error,
            "external_event_id": external_event_id,
            "updated_at": now,
        })

    def cancel_many(self, user_id: str, appointments: list[Appointment]) -> list[Appointment]:
        """Mark every still-scheduled appointment cancelled in one atomic batch.

        Returns the records that were transitioned; already-cancelled
        records are left alone.
        """
        targets = [a for a in appointments if not a.is_cancelled]
        if not targets:
            return []

        now = utcnow()
        batch = self._store.batch()
        collection = _user_collection(user_id, "appointments")
        for appointment in targets:
            batch.update(collection, appointment.id, {
                "status": AppointmentStatus.CANCELLED.value,
                "cancelled_at": now.isoformat(),
                "updated_at": now.isoformat(),
            })
        batch.commit()
        logger.info("Cancelled %d appointment(s) for user %s", len(targets), user_id)
        return [
            a.model_copy(update={
                "status": AppointmentStatus.CANCELLED, "cancelled_at": now, "updated_at": now,
            })
            for a in targets
        ]


# ── Weekly availability ──────────────────────────────────────────────


class AvailabilityRepository:
    _DOC_ID = "weekly"

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get(self, user_id: str) -> WeeklyAvailability:
        doc = self._store.get(_user_collection(user_id, "availability"), self._DOC_ID)
        return WeeklyAvailability.model_validate(doc) if doc else WeeklyAvailability()

    def merge(self, user_id: str, days: dict[str, DayAvailability]) -> WeeklyAvailability:
        """Overwrite the given days, keep the others as stored."""
        current = self.get(user_id)
        merged = WeeklyAvailability(days={**current.days, **days}, updated_at=utcnow())
        self._store.set(
            _user_collection(user_id, "availability"), self._DOC_ID, merged.model_dump(mode="json"),
        )
        return merged


# ── Assistant / thread identity ──────────────────────────────────────


class SessionRepository:
    """Where the assistant identity and each user's thread id live."""

    _ASSISTANT_COLLECTION = "assistant_config"
    _ASSISTANT_DOC_ID = "default"
    _THREAD_DOC_ID = "thread"

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get_assistant_identity(self) -> AssistantIdentity | None:
        doc = self._store.get(self._ASSISTANT_COLLECTION, self._ASSISTANT_DOC_ID)
        return AssistantIdentity.model_validate(doc) if doc else None

    def save_assistant_identity(self, identity: AssistantIdentity) -> None:
        self._store.set(
            self._ASSISTANT_COLLECTION, self._ASSISTANT_DOC_ID, identity.model_dump(mode="json"),
        )

    def get_thread(self, user_id: str) -> ConversationThread | None:
        doc = self._store.get(_user_collection(user_id, "assistant"), self._THREAD_DOC_ID)
        return ConversationThread.model_validate(doc) if doc else None

    def save_thread(self, user_id: str, thread: ConversationThread) -> None:
        self._store.set(
            _user_collection(user_id, "assistant"), self._THREAD_DOC_ID, thread.model_dump(mode="json"),
        )
