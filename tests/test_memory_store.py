from datetime import datetime

import pytest

from crewdesk.db.memory_store import MemoryStore
from crewdesk.db.store import Between, Contains, ContainsAny, Eq, to_mongo_filter


def test_predicates_render_as_mongo_filters():
    assert to_mongo_filter([]) == {}
    assert to_mongo_filter([Eq("status", "scheduled")]) == {"status": "scheduled"}
    assert to_mongo_filter([
        Between("date", datetime(2024, 3, 1), None),
        ContainsAny("assigned_user_ids", ("a", "b")),
        Contains("assigned_user_ids", "c"),
    ]) == {"$and": [
        {"date": {"$gte": datetime(2024, 3, 1)}},
        {"assigned_user_ids": {"$in": ["a", "b"]}},
        {"assigned_user_ids": "c"},
    ]}


def test_predicates_match_plain_documents():
    doc = {"date": datetime(2024, 3, 14), "assigned_user_ids": ["a"], "end_time": None}
    assert Between("date", datetime(2024, 3, 14), datetime(2024, 3, 14)).matches(doc)
    assert not Between("date", datetime(2024, 3, 15)).matches(doc)
    assert not Between("missing", datetime(2024, 3, 1)).matches(doc)
    assert ContainsAny("assigned_user_ids", ("z", "a")).matches(doc)
    assert not Contains("assigned_user_ids", "b").matches(doc)
    assert Eq("end_time", None).matches(doc)
    assert Eq("never_set", None).matches(doc)


@pytest.mark.asyncio
async def test_conditional_update_checks_expected_fields():
    store = MemoryStore()
    doc_id = await store.create("jobs", {"status": "scheduled"})
    assert not await store.update("jobs", doc_id, {"status": "completed"}, expected={"status": "in_progress"})
    assert await store.update("jobs", doc_id, {"status": "in_progress"}, expected={"status": "scheduled"})
    assert (await store.get("jobs", doc_id))["status"] == "in_progress"
    assert not await store.update("jobs", "missing", {"status": "x"})


@pytest.mark.asyncio
async def test_set_operations_on_array_fields():
    store = MemoryStore()
    doc_id = await store.create("jobs", {"assigned_user_ids": []})
    await store.update("jobs", doc_id, add_to_set={"assigned_user_ids": "a"})
    await store.update("jobs", doc_id, add_to_set={"assigned_user_ids": "a"})
    await store.update("jobs", doc_id, add_to_set={"assigned_user_ids": "b"})
    await store.update("jobs", doc_id, pull={"assigned_user_ids": "a"})
    assert (await store.get("jobs", doc_id))["assigned_user_ids"] == ["b"]


@pytest.mark.asyncio
async def test_reads_return_copies():
    store = MemoryStore()
    doc_id = await store.create("jobs", {"assigned_user_ids": ["a"]})
    doc = await store.get("jobs", doc_id)
    doc["assigned_user_ids"].append("b")
    assert (await store.get("jobs", doc_id))["assigned_user_ids"] == ["a"]


@pytest.mark.asyncio
async def test_query_orders_and_limits():
    store = MemoryStore()
    for minute in (30, 10, 20):
        await store.create("worklogs", {"start_time": datetime(2024, 3, 14, 9, minute)})
    await store.create("worklogs", {"start_time": None})

    ascending = await store.query("worklogs", order=[("start_time", 1)])
    assert [d["start_time"] for d in ascending][:2] == [None, datetime(2024, 3, 14, 9, 10)]

    newest = await store.query("worklogs", order=[("start_time", -1)], limit=1)
    assert newest[0]["start_time"] == datetime(2024, 3, 14, 9, 30)


@pytest.mark.asyncio
async def test_subscription_reports_changes_until_cancelled():
    store = MemoryStore()
    seen = []
    sub = store.subscribe("jobs", [Eq("status", "scheduled")], [], seen.append, pytest.fail)
    assert store.listener_count == 1
    assert seen[0].items == [] and seen[0].changes == []

    doc_id = await store.create("jobs", {"status": "scheduled", "notes": ""})
    await store.update("jobs", doc_id, {"notes": "gate code 1234"})
    await store.create("jobs", {"status": "completed"})
    await store.update("jobs", doc_id, {"status": "cancelled"})

    assert [[(c.type, c.id) for c in s.changes] for s in seen[1:]] == [
        [("added", doc_id)],
        [("modified", doc_id)],
        [("removed", doc_id)],
    ]

    sub.cancel()
    sub.cancel()
    assert not sub.active
    assert store.listener_count == 0
    await store.create("jobs", {"status": "scheduled"})
    assert len(seen) == 4


@pytest.mark.asyncio
async def test_failing_handler_is_reported_to_error_callback():
    store = MemoryStore()
    errors = []

    def explode(snapshot):
        if snapshot.items:
            raise RuntimeError("boom")

    with store.subscribe("jobs", [], [], explode, errors.append):
        await store.create("jobs", {"status": "scheduled"})
    assert [str(e) for e in errors] == ["boom"]
    assert store.listener_count == 0
