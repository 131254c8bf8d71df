"""Document store abstraction shared by the Mongo and in-process backends.

Predicates know how to render themselves as a Mongo filter and how to match a
plain document, so both backends answer the same query the same way.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence


Document = dict[str, Any]
# (field, 1) ascending, (field, -1) descending, as in pymongo
Order = Sequence[tuple[str, int]]


@dataclass(frozen=True)
class Eq:
    """Equality. ``value=None`` matches null or missing fields."""

    field: str
    value: Any

    def to_mongo(self) -> dict:
        return {self.field: self.value}

    def matches(self, doc: Mapping[str, Any]) -> bool:
        return doc.get(self.field) == self.value


@dataclass(frozen=True)
class Between:
    """Inclusive range; either bound may be omitted."""

    field: str
    start: Any = None
    end: Any = None

    def to_mongo(self) -> dict:
        cond: dict = {}
        if self.start is not None:
            cond["$gte"] = self.start
        if self.end is not None:
            cond["$lte"] = self.end
        return {self.field: cond}

    def matches(self, doc: Mapping[str, Any]) -> bool:
        value = doc.get(self.field)
        if value is None:
            return False
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


@dataclass(frozen=True)
class ContainsAny:
    """Array field shares at least one element with ``values``."""

    field: str
    values: tuple

    def to_mongo(self) -> dict:
        return {self.field: {"$in": list(self.values)}}

    def matches(self, doc: Mapping[str, Any]) -> bool:
        stored = doc.get(self.field) or []
        return any(v in stored for v in self.values)


@dataclass(frozen=True)
class Contains:
    """Array field contains ``value``."""

    field: str
    value: Any

    def to_mongo(self) -> dict:
        # Mongo equality against an array field means membership
        return {self.field: self.value}

    def matches(self, doc: Mapping[str, Any]) -> bool:
        return self.value in (doc.get(self.field) or [])


Predicate = Eq | Between | ContainsAny | Contains


def to_mongo_filter(predicates: Iterable[Predicate]) -> dict:
    clauses = [p.to_mongo() for p in predicates]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    # $and keeps two conditions on the same field from overwriting each other
    return {"$and": clauses}


def matches_all(doc: Mapping[str, Any], predicates: Iterable[Predicate]) -> bool:
    return all(p.matches(doc) for p in predicates)


@dataclass(frozen=True)
class DocumentChange:
    type: str  # added | modified | removed
    id: str


@dataclass(frozen=True)
class Snapshot:
    """Full result set of a subscription plus what changed since the last one."""

    items: list
    changes: list[DocumentChange] = field(default_factory=list)


SnapshotHandler = Callable[[Snapshot], None]
ErrorHandler = Callable[[Exception], None]


class SnapshotTracker:
    """Diffs consecutive query results into added/modified/removed changes."""

    def __init__(self) -> None:
        self._previous: Optional[dict[str, Document]] = None

    def advance(self, docs: list[Document]) -> Optional[Snapshot]:
        current = {d["id"]: d for d in docs}
        previous = self._previous
        self._previous = current
        if previous is None:
            return Snapshot(items=docs, changes=[DocumentChange("added", i) for i in current])
        changes: list[DocumentChange] = []
        for doc_id, doc in current.items():
            if doc_id not in previous:
                changes.append(DocumentChange("added", doc_id))
            elif previous[doc_id] != doc:
                changes.append(DocumentChange("modified", doc_id))
        for doc_id in previous:
            if doc_id not in current:
                changes.append(DocumentChange("removed", doc_id))
        if not changes and list(previous) == list(current):
            return None
        return Snapshot(items=docs, changes=changes)


class Subscription:
    """Handle for a live query. ``cancel()`` releases the underlying stream."""

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel()

    def close(self) -> None:
        self._active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


class DocumentStore(abc.ABC):
    """Persistence collaborator for jobs and work logs.

    Documents come back as dicts with a string ``id`` key.
    """

    @abc.abstractmethod
    async def create(self, collection: str, doc: Document) -> str: ...

    @abc.abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    @abc.abstractmethod
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
        """Apply ``changes`` only if every ``expected`` field still holds.

        Returns False when nothing matched: the document is gone or one of the
        expected values changed underneath the caller.
        """

    @abc.abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool: ...

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order: Order = (),
        limit: Optional[int] = None,
    ) -> list[Document]: ...

    @abc.abstractmethod
    def subscribe(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order: Order,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
    ) -> Subscription: ...
