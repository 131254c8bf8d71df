from datetime import datetime

from crewdesk.schemas.common import JobStatus
from crewdesk.schemas.job_schema import Job
from crewdesk.schemas.worklog_schema import WorkLogEntry
from crewdesk.services.aggregation import (
    format_duration,
    group_by_day,
    per_worker_totals,
    stats_for,
    total_hours,
    total_minutes,
)
from crewdesk.services.jobs import job_address


NOW = datetime(2024, 3, 14, 10, 0)


def _job(job_id, when, status=JobStatus.scheduled, **extra):
    return Job(id=job_id, client_id="client-1", date=when, status=status, **extra)


def _entry(entry_id, user_id="worker-1", minutes=None, start=None, end=None, **extra):
    start = start or datetime(2024, 3, 14, 9, 0)
    return WorkLogEntry(
        id=entry_id,
        user_id=user_id,
        work_date=datetime(2024, 3, 14),
        start_time=start,
        end_time=end,
        duration_minutes=minutes,
        **extra,
    )


def test_stats_use_rolling_week_from_today():
    jobs = [
        _job("a", datetime(2024, 3, 14, 8, 0)),
        _job("b", datetime(2024, 3, 14, 23, 0)),
        _job("c", datetime(2024, 3, 20, 12, 0)),
        _job("d", datetime(2024, 3, 21, 0, 0)),
        _job("e", datetime(2024, 3, 13, 12, 0)),
        _job("f", datetime(2024, 3, 16, 12, 0), JobStatus.completed),
        _job("g", datetime(2024, 3, 16, 12, 0), JobStatus.cancelled),
    ]
    stats = stats_for(jobs, NOW)
    assert stats.today_scheduled == 2
    assert stats.week_scheduled == 3
    assert stats.completed_this_week == 1


def test_stats_of_nothing_are_zero():
    stats = stats_for([], NOW)
    assert (stats.today_scheduled, stats.week_scheduled, stats.completed_this_week) == (0, 0, 0)


def test_group_by_day_orders_days_and_jobs():
    jobs = [
        _job("late", datetime(2024, 3, 15, 16, 0)),
        _job("early", datetime(2024, 3, 15, 8, 0)),
        _job("prev", datetime(2024, 3, 14, 12, 0)),
    ]
    groups = group_by_day(jobs)
    assert [g.day for g in groups] == [datetime(2024, 3, 14), datetime(2024, 3, 15)]
    assert [j.id for j in groups[1].jobs] == ["early", "late"]
    assert group_by_day([]) == []


def test_totals_fall_back_to_times_and_skip_open_entries():
    entries = [
        _entry("stored", minutes=45),
        _entry("derived", end=datetime(2024, 3, 14, 10, 30)),
        _entry("open"),
    ]
    assert total_minutes(entries) == 135
    assert total_hours(150) == 2.5
    assert total_hours(0) == 0


def test_per_worker_totals_key_and_label_fallbacks():
    entries = [
        _entry("1", user_id="worker-1", minutes=30, user_name="Wes Worker"),
        _entry("2", user_id="worker-1", minutes=60),
        _entry("3", user_id="worker-2", minutes=120, user_email="olga@example.com"),
        _entry("4", user_id="", minutes=5),
    ]
    totals = per_worker_totals(entries)
    assert [(t.key, t.label, t.minutes) for t in totals] == [
        ("worker-2", "olga@example.com", 120),
        ("worker-1", "Wes Worker", 90),
        ("unknown", "Unknown", 5),
    ]


def test_format_duration():
    assert format_duration(0) == "0 mins"
    assert format_duration(45) == "45 mins"
    assert format_duration(60) == "1 hr"
    assert format_duration(125) == "2 hrs 5 min"


def test_job_address_prefers_job_location():
    assert job_address(_job("a", NOW, location_address="1 Main St"), "9 Client Rd") == "1 Main St"
    assert job_address(_job("b", NOW), "9 Client Rd") == "9 Client Rd"
    assert job_address(_job("c", NOW)) is None
