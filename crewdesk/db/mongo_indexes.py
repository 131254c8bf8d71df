from motor.motor_asyncio import AsyncIOMotorDatabase
from crewdesk.db.mongo import get_mongo_db


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    """Create required MongoDB indexes (idempotent)."""
    if db is None:
        db = get_mongo_db()

    jobs = db["jobs"]
    # Range feeds are always ordered by scheduled date
    await jobs.create_index([("date", 1)], name="idx_jobs_date")
    await jobs.create_index([("status", 1), ("date", 1)], name="idx_jobs_status_date")
    await jobs.create_index([("client_id", 1), ("date", 1)], name="idx_jobs_client_date")
    # Multikey index for "assigned to" feeds
    await jobs.create_index([("assigned_user_ids", 1), ("date", 1)], name="idx_jobs_assigned_date")

    worklogs = db["worklogs"]
    await worklogs.create_index([("work_date", 1)], name="idx_wl_work_date")
    await worklogs.create_index([("user_id", 1), ("work_date", 1)], name="idx_wl_user_work_date")
    # Open entry lookup on completion
    await worklogs.create_index(
        [("user_id", 1), ("job_id", 1), ("end_time", 1), ("created_at", -1)],
        name="idx_wl_open_entry",
    )
