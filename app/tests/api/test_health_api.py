def test_health(client):
    r = client.get("/api/v1/health", headers={"X-Request-Id": "req-123"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["request_id"] == "req-123"
    assert r.headers["X-Request-Id"] == "req-123"


def test_request_id_generated_when_missing(client):
    r = client.get("/api/v1/health")
    assert r.headers.get("X-Request-Id")
