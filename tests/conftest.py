import os

# Settings are read at import time; keep the app off a real Mongo in tests
os.environ.setdefault("STORE_BACKEND", "memory")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from main import app
from crewdesk.api.deps import get_clock, get_store
from crewdesk.core.security import create_jwt
from crewdesk.db.memory_store import MemoryStore
from crewdesk.services.assignments import AssignmentManager
from crewdesk.services.job_state import JobStateMachine
from crewdesk.services.jobs import JobRepository
from crewdesk.services.worklogs import WorkLogReconciler


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 14, 10, 0))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def repo(store, clock):
    return JobRepository(store, clock)


@pytest.fixture
def machine(store, clock):
    return JobStateMachine(store, clock, allow_backfill_completion=False)


@pytest.fixture
def assignments(store, clock):
    return AssignmentManager(store, clock)


@pytest.fixture
def reconciler(store, clock):
    return WorkLogReconciler(store, clock)


@pytest.fixture
def client(store, clock):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


def token_for(user_id: str, role: str, name: str = "", email: str = "") -> str:
    return create_jwt({"sub": user_id, "role": role, "name": name, "email": email})


@pytest.fixture
def admin_token():
    return token_for("admin-1", "admin", "Ada Admin", "ada@example.com")


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def worker_token():
    return token_for("worker-1", "worker", "Wes Worker", "wes@example.com")


@pytest.fixture
def worker_headers(worker_token):
    return {"Authorization": f"Bearer {worker_token}"}


@pytest.fixture
def other_worker_headers():
    return {"Authorization": f"Bearer {token_for('worker-2', 'worker', 'Olga Other')}"}
