from __future__ import annotations

import logging
from typing import Optional

from crewdesk.core.dates import Clock, utcnow
from crewdesk.core.errors import NotFound, ValidationError
from crewdesk.db.store import (
    Between,
    Contains,
    ContainsAny,
    DocumentStore,
    Eq,
    ErrorHandler,
    Snapshot,
    SnapshotHandler,
    Subscription,
)
from crewdesk.schemas.common import JobStatus
from crewdesk.schemas.job_schema import Job, JobFilter, JobIn, JobUpdate


logger = logging.getLogger(__name__)

JOBS = "jobs"
JOB_ORDER = (("date", 1),)


def job_predicates(flt: JobFilter) -> list:
    predicates: list = []
    if flt.start is not None or flt.end is not None:
        predicates.append(Between("date", flt.start, flt.end))
    if flt.status and flt.status != "all":
        try:
            status = JobStatus(flt.status)
        except ValueError as exc:
            raise ValidationError(f"Unknown job status: {flt.status}") from exc
        predicates.append(Eq("status", status.value))
    if flt.client_id:
        predicates.append(Eq("client_id", flt.client_id))
    if flt.worker_ids:
        predicates.append(ContainsAny("assigned_user_ids", tuple(flt.worker_ids)))
    if flt.worker_id:
        predicates.append(Contains("assigned_user_ids", flt.worker_id))
    return predicates


def job_address(job: Job, client_default: Optional[str] = None) -> Optional[str]:
    """Job-level location wins over the client's default address."""
    if job.location_address:
        return job.location_address
    return client_default


class JobRepository:
    def __init__(self, store: DocumentStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    async def create_job(self, payload: JobIn) -> Job:
        now = self.clock()
        doc = payload.model_dump()
        doc.update({
            "status": JobStatus.scheduled.value,
            "assigned_user_ids": [],
            "created_at": now,
            "updated_at": now,
        })
        job_id = await self.store.create(JOBS, doc)
        logger.info("Created job %s for client %s", job_id, payload.client_id)
        return Job(id=job_id, **doc)

    async def get_job(self, job_id: str) -> Job:
        doc = await self.store.get(JOBS, job_id)
        if not doc:
            raise NotFound(f"Job {job_id} not found")
        return Job(**doc)

    async def update_job(self, job_id: str, payload: JobUpdate) -> Job:
        update = payload.model_dump(exclude_unset=True)
        if "client_id" in update and update["client_id"] is None:
            raise ValidationError("client_id cannot be cleared")
        if "date" in update and update["date"] is None:
            raise ValidationError("date cannot be cleared")
        if "duration_minutes" in update and update["duration_minutes"] is None:
            raise ValidationError("duration_minutes cannot be cleared")
        if "notes" in update and update["notes"] is None:
            update["notes"] = ""
        update["updated_at"] = self.clock()
        matched = await self.store.update(JOBS, job_id, update)
        if not matched:
            raise NotFound(f"Job {job_id} not found")
        return await self.get_job(job_id)

    async def delete_job(self, job_id: str) -> None:
        # Work log entries referencing the job stay as historical records
        deleted = await self.store.delete(JOBS, job_id)
        if not deleted:
            raise NotFound(f"Job {job_id} not found")
        logger.info("Deleted job %s", job_id)

    async def list_jobs(self, flt: JobFilter) -> list[Job]:
        docs = await self.store.query(JOBS, job_predicates(flt), JOB_ORDER)
        return [Job(**d) for d in docs]

    def subscribe_jobs(
        self,
        flt: JobFilter,
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
    ) -> Subscription:
        """Live feed of jobs matching ``flt``, delivered as ``Job`` snapshots."""

        def _forward(snapshot: Snapshot) -> None:
            on_snapshot(Snapshot(items=[Job(**d) for d in snapshot.items], changes=snapshot.changes))

        return self.store.subscribe(JOBS, job_predicates(flt), JOB_ORDER, _forward, on_error)
