"""Error kinds raised by the scheduling core.

Every error carries a short machine readable ``kind`` so the HTTP layer can
report it without string matching on messages.
"""


class CrewDeskError(Exception):
    kind = "error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidTransition(CrewDeskError):
    """Illegal status change. Callers should re-sync state, not retry."""

    kind = "invalid_transition"

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(f"Job {job_id} cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class Conflict(CrewDeskError):
    """A conditional write lost a race against another actor."""

    kind = "conflict"


class NotFound(CrewDeskError):
    kind = "not_found"


class ValidationError(CrewDeskError):
    kind = "validation_error"


class StoreUnavailable(CrewDeskError):
    kind = "store_unavailable"
