import asyncio
from datetime import datetime

import pytest

from crewdesk.core.errors import Conflict, InvalidTransition, NotFound
from crewdesk.schemas.common import JobStatus
from crewdesk.schemas.job_schema import Job, JobIn
from crewdesk.services.job_state import JobStateMachine


async def _new_job(repo) -> Job:
    return await repo.create_job(JobIn(client_id="client-1", date=datetime(2024, 3, 14, 13, 0)))


@pytest.mark.asyncio
async def test_happy_path_start_then_complete(repo, machine, clock):
    job = await _new_job(repo)
    clock.advance(minutes=5)
    started = await machine.start(job.id)
    assert started.status == JobStatus.in_progress
    assert started.updated_at == clock.now

    done = await machine.complete(job.id)
    assert done.status == JobStatus.completed
    assert (await repo.get_job(job.id)).status == JobStatus.completed


@pytest.mark.asyncio
async def test_cancel_from_scheduled_and_in_progress(repo, machine):
    first = await _new_job(repo)
    assert (await machine.cancel(first.id)).status == JobStatus.cancelled

    second = await _new_job(repo)
    await machine.start(second.id)
    assert (await machine.cancel(second.id)).status == JobStatus.cancelled


@pytest.mark.asyncio
async def test_complete_requires_in_progress(repo, machine):
    job = await _new_job(repo)
    with pytest.raises(InvalidTransition) as info:
        await machine.complete(job.id)
    assert info.value.current == "scheduled"
    assert info.value.requested == "completed"
    assert (await repo.get_job(job.id)).status == JobStatus.scheduled


@pytest.mark.asyncio
async def test_terminal_states_are_final(repo, machine):
    job = await _new_job(repo)
    await machine.start(job.id)
    await machine.complete(job.id)
    for action in (machine.start, machine.complete, machine.cancel):
        with pytest.raises(InvalidTransition):
            await action(job.id)

    cancelled = await _new_job(repo)
    await machine.cancel(cancelled.id)
    with pytest.raises(InvalidTransition):
        await machine.start(cancelled.id)


@pytest.mark.asyncio
async def test_same_state_is_rejected(repo, machine):
    job = await _new_job(repo)
    await machine.start(job.id)
    with pytest.raises(InvalidTransition):
        await machine.start(job.id)


@pytest.mark.asyncio
async def test_backfill_policy_allows_direct_completion(repo, store, clock):
    lenient = JobStateMachine(store, clock, allow_backfill_completion=True)
    job = await _new_job(repo)
    assert (await lenient.complete(job.id)).status == JobStatus.completed


@pytest.mark.asyncio
async def test_missing_job(machine):
    with pytest.raises(NotFound):
        await machine.start("does-not-exist")


@pytest.mark.asyncio
async def test_stale_expected_status_is_a_conflict(repo, machine):
    job = await _new_job(repo)
    await machine.start(job.id)
    with pytest.raises(Conflict):
        await machine.cancel(job.id, expected_status=JobStatus.scheduled)
    assert (await repo.get_job(job.id)).status == JobStatus.in_progress


@pytest.mark.asyncio
async def test_concurrent_starts_have_exactly_one_winner(repo, machine):
    job = await _new_job(repo)
    results = await asyncio.gather(machine.start(job.id), machine.start(job.id), return_exceptions=True)

    winners = [r for r in results if isinstance(r, Job)]
    losers = [r for r in results if isinstance(r, (Conflict, InvalidTransition))]
    assert len(winners) == 1
    assert len(losers) == 1
    assert (await repo.get_job(job.id)).status == JobStatus.in_progress


@pytest.mark.asyncio
async def test_complete_cannot_overtake_a_concurrent_cancel(repo, machine):
    job = await _new_job(repo)
    await machine.start(job.id)
    results = await asyncio.gather(machine.complete(job.id), machine.cancel(job.id), return_exceptions=True)

    assert sum(isinstance(r, Job) for r in results) == 1
    final = (await repo.get_job(job.id)).status
    assert final in (JobStatus.completed, JobStatus.cancelled)
    winner = next(r for r in results if isinstance(r, Job))
    assert winner.status == final


def test_allowed_targets(store):
    strict = JobStateMachine(store, allow_backfill_completion=False)
    assert strict.allowed_targets(JobStatus.scheduled) == {JobStatus.in_progress, JobStatus.cancelled}
    assert strict.allowed_targets(JobStatus.completed) == frozenset()
    assert not strict.can_transition(JobStatus.in_progress, JobStatus.scheduled)


@pytest.mark.asyncio
async def test_unrecognised_stored_status_is_a_conflict(store, machine):
    for bad in (None, "paused"):
        job_id = await store.create("jobs", {"client_id": "client-1", "date": datetime(2024, 3, 14), "status": bad})
        with pytest.raises(Conflict, match="unrecognised status"):
            await machine.start(job_id)
