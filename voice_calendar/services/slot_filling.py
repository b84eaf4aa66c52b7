"""Per-user conversational state that outlives a single turn.

* :class:`SlotFillingStore` keeps the at-most-one in-flight partial
  appointment a user is still describing.
* :class:`PendingCancellationStore` keeps the bulk-cancellation preview a
  user has been asked to confirm.  Previews expire after a configurable
  number of minutes so a stale "yes" cannot cancel anything.
"""

from __future__ import annotations

import logging

from voice_calendar.config import PENDING_CANCELLATION_TTL_MINUTES
from voice_calendar.models import PartialAppointmentContext, PendingBulkCancellation
from voice_calendar.services.store import DocumentStore

logger = logging.getLogger(__name__)

_COLLECTION = "conversation_state"
_PARTIAL_DOC_ID = "partial_appointment"
_PENDING_DOC_ID = "pending_bulk_cancellation"


def _collection(user_id: str) -> str:
    return f"users/{user_id}/{_COLLECTION}"


class SlotFillingStore:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def save(self, user_id: str, context: PartialAppointmentContext) -> None:
        """Create or overwrite the user's partial appointment."""
        self._store.set(_collection(user_id), _PARTIAL_DOC_ID, context.model_dump(mode="json"))
        logger.debug(
            "Tracked partial %s appointment for %s (missing: %s)",
            context.event_kind.value, user_id, context.missing_fields,
        )

    def get(self, user_id: str) -> PartialAppointmentContext | None:
        doc = self._store.get(_collection(user_id), _PARTIAL_DOC_ID)
        return PartialAppointmentContext.model_validate(doc) if doc else None

    def clear(self, user_id: str) -> bool:
        cleared = self._store.delete(_collection(user_id), _PARTIAL_DOC_ID)
        if cleared:
            logger.debug("Cleared partial appointment for %s", user_id)
        return cleared


class PendingCancellationStore:
    def __init__(
        self, store: DocumentStore, ttl_minutes: int = PENDING_CANCELLATION_TTL_MINUTES,
    ) -> None:
        self._store = store
        self._ttl_minutes = ttl_minutes

    def save(self, user_id: str, pending: PendingBulkCancellation) -> None:
        self._store.set(_collection(user_id), _PENDING_DOC_ID, pending.model_dump(mode="json"))

    def get(self, user_id: str) -> PendingBulkCancellation | None:
        """Return the live preview, discarding it if it has expired."""
        doc = self._store.get(_collection(user_id), _PENDING_DOC_ID)
        if not doc:
            return None
        pending = PendingBulkCancellation.model_validate(doc)
        if pending.is_expired(self._ttl_minutes):
            logger.info(
                "Discarding expired bulk-cancellation preview for %s (created %s)",
                user_id, pending.created_at.isoformat(),
            )
            self.clear(user_id)
            return None
        return pending

    def clear(self, user_id: str) -> bool:
        return self._store.delete(_collection(user_id), _PENDING_DOC_ID)
