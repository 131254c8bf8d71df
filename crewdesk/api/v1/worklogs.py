from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from crewdesk.api.deps import get_clock, get_reconciler
from crewdesk.core.dates import Clock, resolve_range, to_naive_utc
from crewdesk.core.rbac import is_admin_like, require_admin
from crewdesk.core.security import get_current_user
from crewdesk.schemas.worklog_schema import (
    ManualWorkLogIn,
    WorkLogEntry,
    WorkLogFilter,
    WorkLogSummary,
    WorkLogUpdate,
)
from crewdesk.services import aggregation
from crewdesk.services.worklogs import WorkLogReconciler


router = APIRouter(prefix="/worklogs", tags=["worklogs"])


def build_worklog_filter(
    current_user: dict,
    clock: Clock,
    range_: str = "month",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user_id: Optional[str] = None,
    job_id: Optional[str] = None,
) -> WorkLogFilter:
    bounds = resolve_range(
        range_,
        start=to_naive_utc(start) if start else None,
        end=to_naive_utc(end) if end else None,
        clock=clock,
    )
    # Non-admins only ever see their own hours
    if not is_admin_like(str(current_user.get("role", ""))):
        user_id = current_user["id"]
    return WorkLogFilter(start=bounds.start, end=bounds.end, user_id=user_id, job_id=job_id)


@router.get("", response_model=list[WorkLogEntry])
async def list_work_logs(
    range_: Literal["today", "week", "month", "custom"] = Query("month", alias="range"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    user_id: Optional[str] = Query(None),
    job_id: Optional[str] = Query(None),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    clock: Clock = Depends(get_clock),
    current_user=Depends(get_current_user),
):
    flt = build_worklog_filter(current_user, clock, range_, start, end, user_id, job_id)
    return await reconciler.list_work_logs(flt)


@router.get("/summary", response_model=WorkLogSummary)
async def work_log_summary(
    range_: Literal["today", "week", "month", "custom"] = Query("month", alias="range"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    user_id: Optional[str] = Query(None),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    clock: Clock = Depends(get_clock),
    current_user=Depends(get_current_user),
):
    """Payroll review totals for the selected period."""
    flt = build_worklog_filter(current_user, clock, range_, start, end, user_id)
    entries = await reconciler.list_work_logs(flt)
    minutes = aggregation.total_minutes(entries)
    return WorkLogSummary(
        total_minutes=minutes,
        total_hours=aggregation.total_hours(minutes),
        total_label=aggregation.format_duration(minutes),
        per_worker=aggregation.per_worker_totals(entries),
    )


@router.post("", response_model=WorkLogEntry, status_code=status.HTTP_201_CREATED)
async def create_manual_work_log(
    payload: ManualWorkLogIn,
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await reconciler.create_manual_log(payload)


@router.patch("/{entry_id}", response_model=WorkLogEntry)
async def update_work_log_entry(
    payload: WorkLogUpdate,
    entry_id: str = Path(...),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    return await reconciler.update_log_entry(entry_id, payload)


@router.delete("/{entry_id}")
async def delete_work_log_entry(
    entry_id: str = Path(...),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    current_user=Depends(get_current_user),
):
    require_admin(current_user)
    await reconciler.delete_log_entry(entry_id)
    return {"status": "deleted", "id": entry_id}
