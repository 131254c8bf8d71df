MANUAL = {
    "user_id": "worker-1",
    "user_name": "Wes Worker",
    "work_date": "2024-03-12",
    "start_time": "09:00:00",
    "end_time": "11:30:00",
}


def _manual(client, headers, **overrides):
    response = client.post("/api/v1/worklogs", json=dict(MANUAL, **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_admin_records_manual_entry(client, admin_headers):
    entry = _manual(client, admin_headers, notes="Deep clean")
    assert entry["duration_minutes"] == 150
    assert entry["start_time"] == "2024-03-12T09:00:00"
    assert entry["work_date"] == "2024-03-12T00:00:00"
    assert entry["job_id"] is None


def test_only_admins_edit_hours(client, admin_headers, worker_headers):
    assert client.post("/api/v1/worklogs", json=MANUAL, headers=worker_headers).status_code == 403
    entry = _manual(client, admin_headers)
    path = f"/api/v1/worklogs/{entry['id']}"
    assert client.patch(path, json={"notes": "x"}, headers=worker_headers).status_code == 403
    assert client.delete(path, headers=worker_headers).status_code == 403


def test_workers_see_only_their_entries(client, admin_headers, worker_headers):
    _manual(client, admin_headers)
    _manual(client, admin_headers, user_id="worker-2", user_name="Olga Other")

    mine = client.get("/api/v1/worklogs", params={"user_id": "worker-2"}, headers=worker_headers).json()
    assert [e["user_id"] for e in mine] == ["worker-1"]
    assert len(client.get("/api/v1/worklogs", headers=admin_headers).json()) == 2


def test_default_range_is_current_month(client, admin_headers):
    _manual(client, admin_headers)
    _manual(client, admin_headers, work_date="2024-02-28")

    march = client.get("/api/v1/worklogs", headers=admin_headers).json()
    assert [e["work_date"] for e in march] == ["2024-03-12T00:00:00"]
    feb = client.get(
        "/api/v1/worklogs",
        params={"range": "custom", "start": "2024-02-01T00:00:00", "end": "2024-02-29T00:00:00"},
        headers=admin_headers,
    ).json()
    assert [e["work_date"] for e in feb] == ["2024-02-28T00:00:00"]


def test_edit_recomputes_duration_and_delete(client, admin_headers):
    entry = _manual(client, admin_headers)
    path = f"/api/v1/worklogs/{entry['id']}"

    edited = client.patch(path, json={"end_time": "2024-03-12T10:00:00"}, headers=admin_headers)
    assert edited.status_code == 200
    assert edited.json()["duration_minutes"] == 60

    assert client.delete(path, headers=admin_headers).json() == {"status": "deleted", "id": entry["id"]}
    assert client.delete(path, headers=admin_headers).status_code == 404
    assert client.patch(path, json={"notes": "x"}, headers=admin_headers).status_code == 404


def test_summary_totals_per_worker(client, admin_headers, worker_headers):
    _manual(client, admin_headers)
    _manual(client, admin_headers, start_time="13:00:00", end_time="13:30:00")
    _manual(client, admin_headers, user_id="worker-2", user_name="Olga Other", end_time="10:00:00")

    summary = client.get("/api/v1/worklogs/summary", headers=admin_headers).json()
    assert summary["total_minutes"] == 240
    assert summary["total_hours"] == 4.0
    assert summary["total_label"] == "4 hrs"
    assert summary["per_worker"] == [
        {"key": "worker-1", "label": "Wes Worker", "minutes": 180},
        {"key": "worker-2", "label": "Olga Other", "minutes": 60},
    ]

    own = client.get("/api/v1/worklogs/summary", headers=worker_headers).json()
    assert own["total_minutes"] == 180
    assert len(own["per_worker"]) == 1


def test_summary_of_empty_period(client, admin_headers):
    summary = client.get("/api/v1/worklogs/summary", params={"range": "today"}, headers=admin_headers).json()
    assert summary == {"total_minutes": 0, "total_hours": 0.0, "total_label": "0 mins", "per_worker": []}
