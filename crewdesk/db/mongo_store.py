from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Mapping, Optional, Sequence

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from crewdesk.core.errors import StoreUnavailable
from crewdesk.db.store import (
    Document,
    DocumentStore,
    ErrorHandler,
    Order,
    Predicate,
    SnapshotHandler,
    SnapshotTracker,
    Subscription,
    to_mongo_filter,
)


logger = logging.getLogger(__name__)

_WATCHED_OPERATIONS = ["insert", "update", "replace", "delete"]


def _oid(doc_id: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(doc_id):
        return None
    return ObjectId(doc_id)


def _out(doc: dict) -> Document:
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except PyMongoError as exc:
        logger.error("Mongo %s failed: %s", action, exc)
        raise StoreUnavailable(f"Document store unavailable during {action}") from exc


class MongoStore(DocumentStore):
    """DocumentStore backed by MongoDB through motor.

    Conditional writes become ``update_one`` filters, so the check and the set
    happen in a single server-side operation. Subscriptions run on change
    streams, which need a replica set or Atlas cluster.
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db

    async def create(self, collection: str, doc: Document) -> str:
        payload = {k: v for k, v in doc.items() if k != "id"}
        with _store_errors("insert"):
            res = await self.db[collection].insert_one(payload)
        return str(res.inserted_id)

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        oid = _oid(doc_id)
        if oid is None:
            return None
        with _store_errors("read"):
            doc = await self.db[collection].find_one({"_id": oid})
        return _out(doc) if doc else None

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
        oid = _oid(doc_id)
        if oid is None:
            return False
        flt: dict = {"_id": oid}
        flt.update(expected or {})
        ops: dict = {}
        if changes:
            ops["$set"] = dict(changes)
        if add_to_set:
            ops["$addToSet"] = dict(add_to_set)
        if pull:
            ops["$pull"] = dict(pull)
        if not ops:
            with _store_errors("read"):
                return await self.db[collection].count_documents(flt, limit=1) > 0
        with _store_errors("update"):
            res = await self.db[collection].update_one(flt, ops)
        return res.matched_count > 0

    async def delete(self, collection: str, doc_id: str) -> bool:
        oid = _oid(doc_id)
        if oid is None:
            return False
        with _store_errors("delete"):
            res = await self.db[collection].delete_one({"_id": oid})
        return res.deleted_count > 0

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order: Order = (),
        limit: Optional[int] = None,
    ) -> list[Document]:
        cursor = self.db[collection].find(to_mongo_filter(predicates))
        if order:
            cursor = cursor.sort([("_id" if name == "id" else name, direction) for name, direction in order])
        if limit is not None:
            cursor = cursor.limit(limit)
        out: list[Document] = []
        with _store_errors("query"):
            async for doc in cursor:
                out.append(_out(doc))
        return out

    def subscribe(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order: Order,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
    ) -> Subscription:
        tracker = SnapshotTracker()
        pipeline = [{"$match": {"operationType": {"$in": _WATCHED_OPERATIONS}}}]

        async def _publish() -> None:
            docs = await self.query(collection, predicates, order)
            snapshot = tracker.advance(docs)
            if snapshot is not None:
                on_snapshot(snapshot)

        async def _run() -> None:
            try:
                # Open the stream before the first read so no change slips in between
                async with self.db[collection].watch(pipeline) as stream:
                    await _publish()
                    async for _change in stream:
                        await _publish()
            except asyncio.CancelledError:
                raise
            except (PyMongoError, StoreUnavailable) as exc:
                logger.warning("Subscription on %s ended: %s", collection, exc)
                subscription.close()
                on_error(exc if isinstance(exc, StoreUnavailable) else StoreUnavailable(str(exc)))
            except Exception as exc:
                # Handler failures end the feed, as in MemoryStore
                logger.warning("Subscription handler on %s failed: %s", collection, exc)
                subscription.close()
                on_error(exc)

        task = asyncio.get_running_loop().create_task(_run())
        subscription = Subscription(task.cancel)
        return subscription
