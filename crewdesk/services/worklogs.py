"""Work log entries derived from job start/complete events.

Entries are opened by ``record_start`` and closed by ``record_completion``.
Starting while an entry for the same (user, job) pair is still open returns
that entry; a worker may restart a job after an earlier cycle closed. Closing
claims the newest open entry for the (user, job) pair with a
conditional write on ``end_time == None``; whoever loses that race, or finds
nothing open because the start event never landed, gets a zero-length closed
entry instead of an error so every completion is attributable.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from crewdesk.core.dates import Clock, combine, duration_minutes, start_of_day, utcnow
from crewdesk.core.errors import NotFound, ValidationError
from crewdesk.db.store import (
    Between,
    DocumentStore,
    Eq,
    ErrorHandler,
    Snapshot,
    SnapshotHandler,
    Subscription,
)
from crewdesk.schemas.worklog_schema import (
    ManualWorkLogIn,
    WorkLogEntry,
    WorkLogEvent,
    WorkLogFilter,
    WorkLogUpdate,
)


logger = logging.getLogger(__name__)

WORKLOGS = "worklogs"
WORKLOG_ORDER = (("work_date", 1), ("start_time", 1))
# Store ids grow with insertion order and break created_at ties
NEWEST_FIRST = (("created_at", -1), ("id", -1))


def worklog_predicates(flt: WorkLogFilter) -> list:
    predicates: list = []
    if flt.start is not None or flt.end is not None:
        predicates.append(Between("work_date", flt.start, flt.end))
    if flt.user_id:
        predicates.append(Eq("user_id", flt.user_id))
    if flt.job_id:
        predicates.append(Eq("job_id", flt.job_id))
    return predicates


class WorkLogReconciler:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    def _entry_doc(self, event: WorkLogEvent, start: datetime, end: Optional[datetime]) -> dict:
        now = self.clock()
        return {
            "user_id": event.user_id,
            "user_name": event.user_name or None,
            "user_email": event.user_email or None,
            "job_id": event.job_id or None,
            "client_id": event.client_id or None,
            "client_name": event.client_name or None,
            "work_date": start_of_day(event.job_date or now),
            "start_time": start,
            "end_time": end,
            "duration_minutes": duration_minutes(start, end) if end is not None else None,
            "notes": "",
            "created_at": now,
            "updated_at": now,
        }

    async def _insert(self, doc: dict) -> WorkLogEntry:
        entry_id = await self.store.create(WORKLOGS, doc)
        return WorkLogEntry(id=entry_id, **doc)

    async def record_start(self, event: WorkLogEvent) -> WorkLogEntry:
        if not event.user_id:
            raise ValidationError("A user_id is required to log work")
        existing = await self.find_open_entry(event.user_id, event.job_id)
        if existing is not None:
            return existing
        now = self.clock()
        entry = await self._insert(self._entry_doc(event, now, None))
        logger.info("Opened work log %s for user %s on job %s", entry.id, event.user_id, event.job_id)
        return entry

    async def find_open_entry(self, user_id: str, job_id: Optional[str]) -> Optional[WorkLogEntry]:
        docs = await self.store.query(
            WORKLOGS,
            [Eq("user_id", user_id), Eq("job_id", job_id or None), Eq("end_time", None)],
            NEWEST_FIRST,
            limit=1,
        )
        return WorkLogEntry(**docs[0]) if docs else None

    async def _claim(self, entry: WorkLogEntry, now: datetime) -> Optional[WorkLogEntry]:
        minutes = duration_minutes(entry.start_time, now)
        update = {"end_time": now, "duration_minutes": minutes, "updated_at": now}
        claimed = await self.store.update(WORKLOGS, entry.id, update, expected={"end_time": None})
        if not claimed:
            return None
        logger.info("Closed work log %s (%d min)", entry.id, minutes)
        return entry.model_copy(update=update)

    async def close_open_entries(self, job_id: str) -> list[WorkLogEntry]:
        """Close every worker's open entry on a job that reached a terminal state."""
        now = self.clock()
        docs = await self.store.query(WORKLOGS, [Eq("job_id", job_id), Eq("end_time", None)])
        closed: list[WorkLogEntry] = []
        for doc in docs:
            entry = await self._claim(WorkLogEntry(**doc), now)
            if entry is not None:
                closed.append(entry)
        return closed

    async def record_completion(self, event: WorkLogEvent) -> WorkLogEntry:
        if not event.user_id:
            raise ValidationError("A user_id is required to log work")
        now = self.clock()

        open_entry = await self.find_open_entry(event.user_id, event.job_id)
        if open_entry is not None:
            closed = await self._claim(open_entry, now)
            if closed is not None:
                return closed
            logger.warning("Work log %s was closed concurrently; recording fallback entry", open_entry.id)
        else:
            logger.warning(
                "No open work log for user %s on job %s; recording fallback entry",
                event.user_id, event.job_id,
            )

        return await self._insert(self._entry_doc(event, now, now))

    async def create_manual_log(self, payload: ManualWorkLogIn) -> WorkLogEntry:
        if not payload.user_id:
            raise ValidationError("user_id is required")
        start = combine(payload.work_date, payload.start_time)
        end = combine(payload.work_date, payload.end_time)
        now = self.clock()
        doc = {
            "user_id": payload.user_id,
            "user_name": payload.user_name or None,
            "user_email": payload.user_email or None,
            "job_id": None,
            "client_id": payload.client_id or None,
            "client_name": payload.client_name or None,
            "work_date": start_of_day(payload.work_date),
            "start_time": start,
            "end_time": end,
            "duration_minutes": duration_minutes(start, end),
            "notes": payload.notes,
            "created_at": now,
            "updated_at": now,
        }
        return await self._insert(doc)

    async def get_log_entry(self, entry_id: str) -> WorkLogEntry:
        doc = await self.store.get(WORKLOGS, entry_id)
        if not doc:
            raise NotFound(f"Work log entry {entry_id} not found")
        return WorkLogEntry(**doc)

    async def update_log_entry(self, entry_id: str, payload: WorkLogUpdate) -> WorkLogEntry:
        current = await self.get_log_entry(entry_id)
        update: dict = {}
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("work_date") is not None:
            update["work_date"] = start_of_day(changes["work_date"])
        for key in ("start_time", "end_time"):
            if changes.get(key) is not None:
                update[key] = changes[key]
        if "duration_minutes" in changes:
            update["duration_minutes"] = changes["duration_minutes"]
        if "notes" in changes:
            update["notes"] = changes["notes"] or ""

        start = update.get("start_time", current.start_time)
        end = update.get("end_time", current.end_time)
        if start is not None and end is not None:
            # Edited times always win over a stored duration
            update["duration_minutes"] = duration_minutes(start, end)
        update["updated_at"] = self.clock()

        matched = await self.store.update(WORKLOGS, entry_id, update)
        if not matched:
            raise NotFound(f"Work log entry {entry_id} not found")
        return current.model_copy(update=update)

    async def delete_log_entry(self, entry_id: str) -> None:
        deleted = await self.store.delete(WORKLOGS, entry_id)
        if not deleted:
            raise NotFound(f"Work log entry {entry_id} not found")

    async def list_work_logs(self, flt: WorkLogFilter) -> list[WorkLogEntry]:
        docs = await self.store.query(WORKLOGS, worklog_predicates(flt), WORKLOG_ORDER)
        return [WorkLogEntry(**d) for d in docs]

    def subscribe_work_logs(
        self,
        flt: WorkLogFilter,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
    ) -> Subscription:
        def _forward(snapshot: Snapshot) -> None:
            on_snapshot(Snapshot(items=[WorkLogEntry(**d) for d in snapshot.items], changes=snapshot.changes))

        return self.store.subscribe(WORKLOGS, worklog_predicates(flt), WORKLOG_ORDER, _forward, on_error)
