def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["trace_id"]


def test_ready_checks_database(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_trace_id_is_echoed(client):
    response = client.get("/health", headers={"X-Trace-ID": "trace-abc"})
    assert response.headers["X-Trace-ID"] == "trace-abc"
    assert response.json()["trace_id"] == "trace-abc"
