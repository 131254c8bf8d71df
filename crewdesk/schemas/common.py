from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator

from crewdesk.core.dates import to_naive_utc


class JobStatus(str, Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


# Stored timestamps are naive UTC; aware input is converted on the way in
UTCDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]
