from __future__ import annotations

import asyncio
import copy
import logging
import threading
from typing import Any, Mapping, Optional, Sequence

from bson import ObjectId

from crewdesk.db.store import (
    Document,
    DocumentStore,
    ErrorHandler,
    Order,
    Predicate,
    SnapshotHandler,
    SnapshotTracker,
    Subscription,
    matches_all,
)


logger = logging.getLogger(__name__)


def _sort_docs(docs: list[Document], order: Order) -> list[Document]:
    # Stable sorts applied from the least significant key backwards
    for field_name, direction in reversed(list(order)):
        present = [d for d in docs if d.get(field_name) is not None]
        missing = [d for d in docs if d.get(field_name) is None]
        present.sort(key=lambda d: d[field_name], reverse=direction < 0)
        # Mongo sorts nulls first ascending and last descending
        docs = missing + present if direction >= 0 else present + missing
    return docs


class _Listener:
    def __init__(self, collection, predicates, order, on_snapshot, on_error) -> None:
        self.collection = collection
        self.predicates = tuple(predicates)
        self.order = tuple(order)
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.tracker = SnapshotTracker()


class MemoryStore(DocumentStore):
    """In-process store with the same semantics as the Mongo backend.

    Reads yield to the event loop after taking their copy, the way a network
    round trip would, so concurrent callers can act on a stale read and must
    rely on conditional writes. Writes themselves are atomic.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._listeners: list[_Listener] = []
        self._lock = threading.RLock()

    def _coll(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    def _select(self, collection, predicates, order, limit=None) -> list[Document]:
        docs = [copy.deepcopy(d) for d in self._coll(collection).values() if matches_all(d, predicates)]
        docs = _sort_docs(docs, order)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners):
            if listener.collection != collection:
                continue
            self._deliver(listener)

    def _deliver(self, listener: _Listener) -> None:
        docs = self._select(listener.collection, listener.predicates, listener.order)
        snapshot = listener.tracker.advance(docs)
        if snapshot is None:
            return
        try:
            listener.on_snapshot(snapshot)
        except Exception as exc:
            logger.warning("Subscription handler on %s failed: %s", listener.collection, exc)
            listener.on_error(exc)

    async def create(self, collection: str, doc: Document) -> str:
        # ObjectId strings sort by creation order, as they do in Mongo
        doc_id = str(ObjectId())
        with self._lock:
            stored = copy.deepcopy(dict(doc))
            stored.pop("id", None)
            stored["id"] = doc_id
            self._coll(collection)[doc_id] = stored
            self._notify(collection)
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            doc = copy.deepcopy(doc) if doc is not None else None
        await asyncio.sleep(0)
        return doc

    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: Optional[Mapping[str, Any]] = None,
        *,
        expected: Optional[Mapping[str, Any]] = None,
        add_to_set: Optional[Mapping[str, Any]] = None,
        pull: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            if doc is None:
                return False
            for key, value in (expected or {}).items():
                if doc.get(key) != value:
                    return False
            for key, value in (changes or {}).items():
                doc[key] = copy.deepcopy(value)
            for key, value in (add_to_set or {}).items():
                items = doc.setdefault(key, [])
                if value not in items:
                    items.append(value)
            for key, value in (pull or {}).items():
                doc[key] = [v for v in doc.get(key) or [] if v != value]
            self._notify(collection)
        return True

    async def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            removed = self._coll(collection).pop(doc_id, None)
            if removed is not None:
                self._notify(collection)
        return removed is not None

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order: Order = (),
        limit: Optional[int] = None,
    ) -> list[Document]:
        with self._lock:
            docs = self._select(collection, predicates, order, limit)
        await asyncio.sleep(0)
        return docs

    def subscribe(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order: Order,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
    ) -> Subscription:
        listener = _Listener(collection, predicates, order, on_snapshot, on_error)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        with self._lock:
            self._listeners.append(listener)
            # The initial snapshot is delivered before subscribe returns
            self._deliver(listener)
        return Subscription(_remove)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
