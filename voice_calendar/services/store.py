"""Document-store capability used by every repository in the core.

The production backend is a hosted document database; the core only
relies on the small surface described by :class:`DocumentStore`:
point get/set/update/delete, a filtered range query with ascending
ordering, and an atomic multi-document batch write.

:class:`InMemoryDocumentStore` implements that surface for the CLI and
the test-suite.

Design decisions
────────────────
• **Collection paths** are plain strings such as
  ``users/<uid>/appointments`` so per-user data never shares a collection.
• **Copies in, copies out**: callers can mutate returned dicts freely.
• **threading.Lock** guards every read and write; a batch commit holds
  the lock for the whole write set so readers never observe half of it.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

Filter = tuple[str, str, Any]

_OPERATORS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "not-in": lambda a, b: a not in b,
}


class DocumentNotFound(KeyError):
    """Raised by ``update`` when the target document does not exist."""


class WriteBatch(Protocol):
    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def commit(self) -> None: ...


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False,
    ) -> None: ...

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...

    def delete(self, collection: str, doc_id: str) -> bool: ...

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Iterable[str] = (),
    ) -> list[dict[str, Any]]: ...

    def batch(self) -> WriteBatch: ...


def _sort_key(doc: dict[str, Any], fields: list[str]) -> tuple:
    # Missing / null values sort first, like an unset time on an all-day entry.
    return tuple((doc.get(f) is not None, doc.get(f) or "") for f in fields)


class _InMemoryWriteBatch:
    """Collects writes and applies them all-or-nothing on ``commit``."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self._ops: list[tuple[str, str, str, dict[str, Any] | None]] = []
        self._committed = False

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._ops.append(("set", collection, doc_id, copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._ops.append(("update", collection, doc_id, copy.deepcopy(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(("delete", collection, doc_id, None))

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Batch already committed")
        self._store._apply_batch(self._ops)
        self._committed = True

    def __len__(self) -> int:
        return len(self._ops)


class InMemoryDocumentStore:
    """Thread-safe dict-of-dicts implementation of :class:`DocumentStore`."""

    def __init__(self) -> None:
        # collection path → doc id → document
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    # ── Point operations ─────────────────────────────────────────────

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False,
    ) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            if doc is None:
                raise DocumentNotFound(f"{collection}/{doc_id}")
            doc.update(copy.deepcopy(fields))

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collections.get(collection, {}).pop(doc_id, None) is not None

    # ── Queries ──────────────────────────────────────────────────────

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Iterable[str] = (),
    ) -> list[dict[str, Any]]:
        """Return documents matching every filter, sorted ascending by ``order_by``."""
        filters = list(filters)
        for _, op, _ in filters:
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported filter operator: {op}")

        with self._lock:
            docs = [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]

        matched = [
            d for d in docs
            if all(_OPERATORS[op](d.get(field), value) for field, op, value in filters)
        ]
        fields = list(order_by)
        if fields:
            matched.sort(key=lambda d: _sort_key(d, fields))
        return matched

    # ── Batches ──────────────────────────────────────────────────────

    def batch(self) -> _InMemoryWriteBatch:
        return _InMemoryWriteBatch(self)

    def _apply_batch(self, ops: list[tuple[str, str, str, dict[str, Any] | None]]) -> None:
        with self._lock:
            # Validate first so a bad update leaves the store untouched.
            existing = {
                (collection, doc_id)
                for collection, docs in self._collections.items() for doc_id in docs
            }
            for kind, collection, doc_id, _ in ops:
                key = (collection, doc_id)
                if kind == "set":
                    existing.add(key)
                elif kind == "delete":
                    existing.discard(key)
                elif key not in existing:
                    raise DocumentNotFound(f"{collection}/{doc_id}")

            for kind, collection, doc_id, data in ops:
                docs = self._collections.setdefault(collection, {})
                if kind == "set":
                    docs[doc_id] = data
                elif kind == "update":
                    docs[doc_id].update(data)
                else:
                    docs.pop(doc_id, None)
        logger.debug("Store: committed batch of %d writes", len(ops))
