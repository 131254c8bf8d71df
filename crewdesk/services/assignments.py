from __future__ import annotations

import logging
from typing import Iterable

from crewdesk.core.dates import Clock, utcnow
from crewdesk.core.errors import NotFound, ValidationError
from crewdesk.db.store import DocumentStore
from crewdesk.schemas.job_schema import Job
from crewdesk.services.jobs import JOBS


logger = logging.getLogger(__name__)


def _dedupe(worker_ids: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for wid in worker_ids:
        wid = str(wid).strip()
        if wid:
            seen.setdefault(wid, None)
    return list(seen)


class AssignmentManager:
    """Worker set of a job, independent of its status."""

    def __init__(self, store: DocumentStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    async def _reload(self, job_id: str) -> Job:
        doc = await self.store.get(JOBS, job_id)
        if not doc:
            raise NotFound(f"Job {job_id} not found")
        return Job(**doc)

    async def assign(self, job_id: str, worker_ids: Iterable[str]) -> Job:
        # Explicit overwrite; last writer wins
        workers = _dedupe(worker_ids)
        matched = await self.store.update(
            JOBS, job_id, {"assigned_user_ids": workers, "updated_at": self.clock()}
        )
        if not matched:
            raise NotFound(f"Job {job_id} not found")
        logger.info("Job %s assigned to %d worker(s)", job_id, len(workers))
        return await self._reload(job_id)

    async def add_worker(self, job_id: str, worker_id: str) -> Job:
        if not worker_id:
            raise ValidationError("worker_id is required")
        matched = await self.store.update(
            JOBS, job_id, {"updated_at": self.clock()}, add_to_set={"assigned_user_ids": worker_id}
        )
        if not matched:
            raise NotFound(f"Job {job_id} not found")
        return await self._reload(job_id)

    async def remove_worker(self, job_id: str, worker_id: str) -> Job:
        if not worker_id:
            raise ValidationError("worker_id is required")
        matched = await self.store.update(
            JOBS, job_id, {"updated_at": self.clock()}, pull={"assigned_user_ids": worker_id}
        )
        if not matched:
            raise NotFound(f"Job {job_id} not found")
        return await self._reload(job_id)
