def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to CrewDesk Backend"}


def test_health_reports_store_backend(client):
    assert client.get("/health").json() == {"status": "ok", "store": "memory"}
