import os


def _as_bool(val: str | None, default: bool = True) -> bool:
    if val is None:
        return default
    v = val.strip().lower()
    return v in {"1", "true", "yes", "on"}


class JobPolicy:
    # scheduled -> completed without passing through in_progress
    backfill_completion: bool

    def __init__(self) -> None:
        self.backfill_completion = _as_bool(os.getenv("FEATURE_BACKFILL_COMPLETION"), False)


policy = JobPolicy()
