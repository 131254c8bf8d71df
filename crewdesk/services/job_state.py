"""Job lifecycle transitions.

    scheduled --start--> in_progress --complete--> completed
        |                     |
        +------cancel---------+-----cancel-------> cancelled

``completed`` and ``cancelled`` are terminal. With the backfill policy on,
``scheduled -> completed`` is accepted for records entered after the fact.

Every transition is a compare-and-set on the status the machine observed, so
two actors racing on the same job cannot both win.
"""
from __future__ import annotations

import logging
from typing import Optional

from crewdesk.core.dates import Clock, utcnow
from crewdesk.core.errors import Conflict, InvalidTransition, NotFound
from crewdesk.core.feature_flags import policy
from crewdesk.db.store import DocumentStore
from crewdesk.schemas.common import JobStatus
from crewdesk.schemas.job_schema import Job
from crewdesk.services.jobs import JOBS


logger = logging.getLogger(__name__)

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.scheduled: frozenset({JobStatus.in_progress, JobStatus.cancelled}),
    JobStatus.in_progress: frozenset({JobStatus.completed, JobStatus.cancelled}),
    JobStatus.completed: frozenset(),
    JobStatus.cancelled: frozenset(),
}


class JobStateMachine:
    def __init__(
        self,
        store: DocumentStore,
        clock: Clock = utcnow,
        allow_backfill_completion: Optional[bool] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        if allow_backfill_completion is None:
            allow_backfill_completion = policy.backfill_completion
        self.allow_backfill_completion = allow_backfill_completion

    def allowed_targets(self, current: JobStatus) -> frozenset[JobStatus]:
        targets = TRANSITIONS[current]
        if current is JobStatus.scheduled and self.allow_backfill_completion:
            targets = targets | {JobStatus.completed}
        return targets

    def can_transition(self, current: JobStatus, target: JobStatus) -> bool:
        return target in self.allowed_targets(current)

    async def transition(
        self,
        job_id: str,
        target: JobStatus,
        expected_status: Optional[JobStatus] = None,
    ) -> Job:
        doc = await self.store.get(JOBS, job_id)
        if not doc:
            raise NotFound(f"Job {job_id} not found")
        stored = doc.get("status", JobStatus.scheduled.value)
        try:
            current = JobStatus(stored)
        except ValueError as exc:
            raise Conflict(f"Job {job_id} has unrecognised status {stored!r}") from exc
        if expected_status is not None and expected_status is not current:
            raise Conflict(
                f"Job {job_id} is {current.value}, not {expected_status.value}; reload before retrying"
            )
        if not self.can_transition(current, target):
            raise InvalidTransition(job_id, current.value, target.value)

        now = self.clock()
        matched = await self.store.update(
            JOBS,
            job_id,
            {"status": target.value, "updated_at": now},
            expected={"status": current.value},
        )
        if not matched:
            latest = await self.store.get(JOBS, job_id)
            if not latest:
                raise NotFound(f"Job {job_id} not found")
            logger.warning(
                "Lost race moving job %s %s -> %s (now %s)",
                job_id, current.value, target.value, latest.get("status"),
            )
            raise Conflict(f"Job {job_id} changed to {latest.get('status')} while updating")

        logger.info("Job %s %s -> %s", job_id, current.value, target.value)
        doc.update({"status": target.value, "updated_at": now})
        return Job(**doc)

    async def start(self, job_id: str, expected_status: Optional[JobStatus] = None) -> Job:
        return await self.transition(job_id, JobStatus.in_progress, expected_status)

    async def complete(self, job_id: str, expected_status: Optional[JobStatus] = None) -> Job:
        return await self.transition(job_id, JobStatus.completed, expected_status)

    async def cancel(self, job_id: str, expected_status: Optional[JobStatus] = None) -> Job:
        return await self.transition(job_id, JobStatus.cancelled, expected_status)
