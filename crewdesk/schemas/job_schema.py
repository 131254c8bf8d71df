from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from crewdesk.schemas.common import JobStatus, UTCDateTime
from crewdesk.schemas.worklog_schema import WorkLogEntry


class JobIn(BaseModel):
    client_id: str = Field(min_length=1)
    date: UTCDateTime
    duration_minutes: int = Field(default=60, gt=0)
    location_id: Optional[str] = None
    location_label: Optional[str] = None
    location_address: Optional[str] = None
    notes: str = ""


class JobUpdate(BaseModel):
    client_id: Optional[str] = Field(default=None, min_length=1)
    date: Optional[UTCDateTime] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    location_id: Optional[str] = None
    location_label: Optional[str] = None
    location_address: Optional[str] = None
    notes: Optional[str] = None


class Job(BaseModel):
    id: str
    client_id: str
    date: datetime
    duration_minutes: int = 60
    status: JobStatus = JobStatus.scheduled
    assigned_user_ids: list[str] = Field(default_factory=list)
    location_id: Optional[str] = None
    location_label: Optional[str] = None
    location_address: Optional[str] = None
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class JobActionIn(BaseModel):
    # Status the caller last observed; a mismatch is reported as a conflict
    expected_status: Optional[JobStatus] = None
    client_name: Optional[str] = None
    # Client default address, used when the job has no location of its own
    client_address: Optional[str] = None


class AssignmentIn(BaseModel):
    worker_ids: list[str]


class JobFilter(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    status: Optional[str] = None  # a JobStatus value or "all"
    client_id: Optional[str] = None
    worker_ids: list[str] = Field(default_factory=list)
    worker_id: Optional[str] = None


class JobStats(BaseModel):
    today_scheduled: int = 0
    week_scheduled: int = 0
    completed_this_week: int = 0


class DayGroup(BaseModel):
    day: datetime
    jobs: list[Job]


class JobActionOut(BaseModel):
    job: Job
    work_log: Optional[WorkLogEntry] = None
    address: Optional[str] = None
    # Entries of other workers closed because the job ended
    closed_logs: list[WorkLogEntry] = Field(default_factory=list)
