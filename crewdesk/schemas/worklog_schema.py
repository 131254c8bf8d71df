from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from crewdesk.schemas.common import UTCDateTime


class WorkLogEvent(BaseModel):
    """A worker's start or complete action on a job."""

    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    job_id: Optional[str] = None
    job_date: Optional[UTCDateTime] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None


class ManualWorkLogIn(BaseModel):
    user_id: str = Field(min_length=1)
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    work_date: date
    start_time: time
    end_time: time
    notes: str = ""


class WorkLogUpdate(BaseModel):
    work_date: Optional[UTCDateTime] = None
    start_time: Optional[UTCDateTime] = None
    end_time: Optional[UTCDateTime] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None


class WorkLogEntry(BaseModel):
    id: str
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    job_id: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    work_date: datetime
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkLogFilter(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    user_id: Optional[str] = None
    job_id: Optional[str] = None


class WorkerTotal(BaseModel):
    key: str
    label: str
    minutes: int


class WorkLogSummary(BaseModel):
    total_minutes: int
    total_hours: float
    total_label: str
    per_worker: list[WorkerTotal]
