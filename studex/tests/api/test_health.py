from sqlalchemy.exc import OperationalError

from studex.db.session import get_db


def test_health(client):
    r = client.get("/api/v1/health", headers={"X-Request-Id": "req-123"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["request_id"] == "req-123"
    assert body["service"]
    assert r.headers["X-Request-Id"] == "req-123"


def test_request_id_generated_when_missing(client):
    r = client.get("/api/v1/health")
    assert r.headers.get("X-Request-Id")


def test_health_reports_unreachable_database(client):
    class BrokenSession:
        def execute(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    client.app.dependency_overrides[get_db] = lambda: BrokenSession()
    r = client.get("/api/v1/health")
    assert r.status_code == 503
    assert r.json()["status"] == "degraded"
    assert r.json()["database"] == "unavailable"
