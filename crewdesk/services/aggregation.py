"""Read-only views over a snapshot of jobs or work log entries.

Everything here is a pure function of its input; callers recompute from the
latest snapshot instead of patching previous results.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Sequence

from crewdesk.core.dates import DateRange, duration_minutes, end_of_day, rolling_week, start_of_day
from crewdesk.schemas.common import JobStatus
from crewdesk.schemas.job_schema import DayGroup, Job, JobStats
from crewdesk.schemas.worklog_schema import WorkLogEntry, WorkerTotal


def _count(jobs: Iterable[Job], status: JobStatus, window: DateRange) -> int:
    return sum(1 for j in jobs if j.status == status and window.contains(j.date))


def stats_for(jobs: Sequence[Job], now: datetime) -> JobStats:
    today = DateRange(start_of_day(now), end_of_day(now))
    week = rolling_week(now)
    return JobStats(
        today_scheduled=_count(jobs, JobStatus.scheduled, today),
        week_scheduled=_count(jobs, JobStatus.scheduled, week),
        completed_this_week=_count(jobs, JobStatus.completed, week),
    )


def group_by_day(jobs: Iterable[Job]) -> list[DayGroup]:
    buckets: dict[datetime, list[Job]] = defaultdict(list)
    for job in jobs:
        buckets[start_of_day(job.date)].append(job)
    return [
        DayGroup(day=day, jobs=sorted(buckets[day], key=lambda j: j.date))
        for day in sorted(buckets)
    ]


def entry_minutes(entry: WorkLogEntry) -> int:
    if entry.duration_minutes is not None:
        return entry.duration_minutes
    if entry.end_time is None:
        return 0
    return duration_minutes(entry.start_time, entry.end_time)


def total_minutes(entries: Iterable[WorkLogEntry]) -> int:
    return sum(entry_minutes(e) for e in entries)


def total_hours(minutes: int) -> float:
    return round(minutes / 60, 1)


def per_worker_totals(entries: Iterable[WorkLogEntry]) -> list[WorkerTotal]:
    totals: dict[str, WorkerTotal] = {}
    for entry in entries:
        key = entry.user_id or entry.user_email or "unknown"
        if key not in totals:
            label = entry.user_name or entry.user_email or entry.user_id or "Unknown"
            totals[key] = WorkerTotal(key=key, label=label, minutes=0)
        totals[key].minutes += entry_minutes(entry)
    return sorted(totals.values(), key=lambda t: t.minutes, reverse=True)


def format_duration(minutes: int) -> str:
    if not minutes:
        return "0 mins"
    if minutes < 60:
        return f"{minutes} mins"
    hours, mins = divmod(minutes, 60)
    label = f"{hours} hr{'s' if hours > 1 else ''}"
    if not mins:
        return label
    return f"{label} {mins} min"
