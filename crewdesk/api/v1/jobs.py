from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from crewdesk.api.deps import get_assignments, get_clock, get_job_repository, get_reconciler, get_state_machine
from crewdesk.core.dates import Clock, resolve_range, to_naive_utc
from crewdesk.core.errors import Conflict
from crewdesk.core.rbac import can_act_on_job, is_admin_like, require_admin
from crewdesk.core.security import get_current_user
from crewdesk.schemas.common import JobStatus
from crewdesk.schemas.job_schema import (
    AssignmentIn,
    DayGroup,
    Job,
    JobActionIn,
    JobActionOut,
    JobFilter,
    JobIn,
    JobStats,
    JobUpdate,
)
from crewdesk.schemas.worklog_schema import WorkLogEntry, WorkLogEvent
from crewdesk.services import aggregation
from crewdesk.services.assignments import AssignmentManager
from crewdesk.services.job_state import JobStateMachine
from crewdesk.services.jobs import JobRepository, job_address
from crewdesk.services.worklogs import WorkLogReconciler


router = APIRouter(tags=["jobs"])

RangePreset = Literal["today", "week", "month", "custom"]


def build_job_filter(
    current_user: dict,
    clock: Clock,
    range_: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status_: Optional[str] = None,
    client_id: Optional[str] = None,
    worker_ids: Optional[list[str]] = None,
) -> JobFilter:
    flt = JobFilter(status=status_, client_id=client_id, worker_ids=worker_ids or [])
    start = to_naive_utc(start) if start else None
    end = to_naive_utc(end) if end else None
    if range_:
        bounds = resolve_range(range_, start=start, end=end, clock=clock)
        flt.start, flt.end = bounds.start, bounds.end
    else:
        flt.start, flt.end = start, end
    # Workers only ever see the jobs they are assigned to
    if not is_admin_like(str(current_user.get("role", ""))):
        flt.worker_ids = []
        flt.worker_id = current_user["id"]
    return flt


def _event(job: Job, user: dict, payload: JobActionIn) -> WorkLogEvent:
    return WorkLogEvent(
        user_id=user["id"],
        user_name=user.get("name") or None,
        user_email=user.get("email") or None,
        job_id=job.id,
        job_date=job.date,
        client_id=job.client_id,
        client_name=payload.client_name,
    )


# ---------------------- Jobs ----------------------


@router.post("/jobs", response_model=Job, status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: JobIn,
    repo: JobRepository = Depends(get_job_repository),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await repo.create_job(payload)


@router.get("/jobs", response_model=list[Job])
async def list_jobs(
    range_: Optional[RangePreset] = Query(None, alias="range"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    status_: Optional[str] = Query(None, alias="status"),
    client_id: Optional[str] = Query(None),
    worker_id: Optional[list[str]] = Query(None, description="Jobs assigned to any of these workers"),
    repo: JobRepository = Depends(get_job_repository),
    clock: Clock = Depends(get_clock),
    current_user=Depends(get_current_user),
):
    flt = build_job_filter(current_user, clock, range_, start, end, status_, client_id, worker_id)
    return await repo.list_jobs(flt)


@router.get("/jobs/stats", response_model=JobStats)
async def job_stats(
    repo: JobRepository = Depends(get_job_repository),
    clock: Clock = Depends(get_clock),
    current_user=Depends(get_current_user),
):
    now = clock()
    # The rolling week covers today, so one query feeds every counter
    flt = build_job_filter(current_user, clock, "week")
    jobs = await repo.list_jobs(flt)
    return aggregation.stats_for(jobs, now)


@router.get("/jobs/by-day", response_model=list[DayGroup])
async def jobs_by_day(
    range_: RangePreset = Query("week", alias="range"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    status_: Optional[str] = Query(None, alias="status"),
    repo: JobRepository = Depends(get_job_repository),
    clock: Clock = Depends(get_clock),
    current_user=Depends(get_current_user),
):
    flt = build_job_filter(current_user, clock, range_, start, end, status_)
    return aggregation.group_by_day(await repo.list_jobs(flt))


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(
    job_id: str = Path(...),
    repo: JobRepository = Depends(get_job_repository),
    current_user=Depends(get_current_user),
):
    job = await repo.get_job(job_id)
    if not can_act_on_job(current_user, job):
        raise HTTPException(status_code=403, detail="Forbidden")
    return job


@router.patch("/jobs/{job_id}", response_model=Job)
async def update_job(
    payload: JobUpdate,
    job_id: str = Path(...),
    repo: JobRepository = Depends(get_job_repository),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await repo.update_job(job_id, payload)


@router.delete("/jobs/{job_id}")
async def delete_job(
    job_id: str = Path(...),
    repo: JobRepository = Depends(get_job_repository),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    await repo.delete_job(job_id)
    return {"status": "deleted", "id": job_id}


# ---------------------- Status transitions ----------------------


@router.post("/jobs/{job_id}/start", response_model=JobActionOut)
async def start_job(
    payload: Optional[JobActionIn] = None,
    job_id: str = Path(...),
    repo: JobRepository = Depends(get_job_repository),
    machine: JobStateMachine = Depends(get_state_machine),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    payload = payload or JobActionIn()
    job = await repo.get_job(job_id)
    if not can_act_on_job(current_user, job):
        raise HTTPException(status_code=403, detail="Forbidden")
    job = await machine.start(job_id, payload.expected_status)
    work_log = None
    # Time is tracked for the assigned worker pressing start, not for admins
    if current_user["id"] in job.assigned_user_ids:
        work_log = await reconciler.record_start(_event(job, current_user, payload))
    return JobActionOut(job=job, work_log=work_log, address=job_address(job, payload.client_address))


@router.post("/jobs/{job_id}/complete", response_model=JobActionOut)
async def complete_job(
    payload: Optional[JobActionIn] = None,
    job_id: str = Path(...),
    repo: JobRepository = Depends(get_job_repository),
    machine: JobStateMachine = Depends(get_state_machine),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    payload = payload or JobActionIn()
    job = await repo.get_job(job_id)
    if not can_act_on_job(current_user, job):
        raise HTTPException(status_code=403, detail="Forbidden")
    job = await machine.complete(job_id, payload.expected_status)
    work_log = None
    if current_user["id"] in job.assigned_user_ids:
        work_log = await reconciler.record_completion(_event(job, current_user, payload))
    closed = await reconciler.close_open_entries(job_id)
    return JobActionOut(
        job=job,
        work_log=work_log,
        address=job_address(job, payload.client_address),
        closed_logs=closed,
    )


@router.post("/jobs/{job_id}/cancel", response_model=JobActionOut)
async def cancel_job(
    payload: Optional[JobActionIn] = None,
    job_id: str = Path(...),
    machine: JobStateMachine = Depends(get_state_machine),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    payload = payload or JobActionIn()
    job = await machine.cancel(job_id, payload.expected_status)
    closed = await reconciler.close_open_entries(job_id)
    return JobActionOut(job=job, address=job_address(job, payload.client_address), closed_logs=closed)


# ---------------------- Work time on a running job ----------------------


async def _running_job_for_worker(repo: JobRepository, job_id: str, user: dict) -> Job:
    job = await repo.get_job(job_id)
    if user["id"] not in job.assigned_user_ids:
        raise HTTPException(status_code=403, detail="Only assigned workers can log time on a job")
    if job.status != JobStatus.in_progress:
        raise Conflict(f"Job {job_id} is {job.status.value}; time is only logged while it is in progress")
    return job


@router.post("/jobs/{job_id}/worklog/start", response_model=WorkLogEntry)
async def record_work_log_start(
    payload: Optional[JobActionIn] = None,
    job_id: str = Path(...),
    repo: JobRepository = Depends(get_job_repository),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    """Join a job another assigned worker already started."""
    payload = payload or JobActionIn()
    job = await _running_job_for_worker(repo, job_id, current_user)
    return await reconciler.record_start(_event(job, current_user, payload))


@router.post("/jobs/{job_id}/worklog/complete", response_model=WorkLogEntry)
async def record_work_log_completion(
    payload: Optional[JobActionIn] = None,
    job_id: str = Path(...),
    repo: JobRepository = Depends(get_job_repository),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    """Stop the caller's clock while the job keeps running for the others."""
    payload = payload or JobActionIn()
    job = await _running_job_for_worker(repo, job_id, current_user)
    return await reconciler.record_completion(_event(job, current_user, payload))


# ---------------------- Assignments ----------------------


@router.put("/jobs/{job_id}/assignments", response_model=Job)
async def assign_workers(
    payload: AssignmentIn,
    job_id: str = Path(...),
    assignments: AssignmentManager = Depends(get_assignments),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await assignments.assign(job_id, payload.worker_ids)


@router.post("/jobs/{job_id}/assignments/{worker_id}", response_model=Job)
async def add_worker(
    job_id: str = Path(...),
    worker_id: str = Path(...),
    assignments: AssignmentManager = Depends(get_assignments),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await assignments.add_worker(job_id, worker_id)


@router.delete("/jobs/{job_id}/assignments/{worker_id}", response_model=Job)
async def remove_worker(
    job_id: str = Path(...),
    worker_id: str = Path(...),
    assignments: AssignmentManager = Depends(get_assignments),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await assignments.remove_worker(job_id, worker_id)
