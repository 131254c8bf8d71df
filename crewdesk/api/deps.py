from typing import Optional

from fastapi import Depends

from crewdesk.core.config import settings
from crewdesk.core.dates import Clock, utcnow
from crewdesk.db.memory_store import MemoryStore
from crewdesk.db.mongo import get_mongo_db
from crewdesk.db.mongo_store import MongoStore
from crewdesk.db.store import DocumentStore
from crewdesk.services.assignments import AssignmentManager
from crewdesk.services.job_state import JobStateMachine
from crewdesk.services.jobs import JobRepository
from crewdesk.services.worklogs import WorkLogReconciler


_memory_store: Optional[MemoryStore] = None


def get_store() -> DocumentStore:
    global _memory_store
    if settings.STORE_BACKEND == "memory":
        if _memory_store is None:
            _memory_store = MemoryStore()
        return _memory_store
    return MongoStore(get_mongo_db())


def get_clock() -> Clock:
    return utcnow


def get_job_repository(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> JobRepository:
    return JobRepository(store, clock)


def get_state_machine(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> JobStateMachine:
    return JobStateMachine(store, clock)


def get_assignments(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> AssignmentManager:
    return AssignmentManager(store, clock)


def get_reconciler(store: DocumentStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> WorkLogReconciler:
    return WorkLogReconciler(store, clock)
