import pytest
from fastapi.testclient import TestClient
from crown.main import app


@pytest.mark.asyncio
async def test_health_checks_database(client):
    r = await client.get("/health", headers={"X-Request-ID": "req-42"})
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["checks"] == {"database": "ok"}
    assert data["request_id"] == "req-42"
    assert r.headers["X-Request-ID"] == "req-42"


sync_client = TestClient(app)


def test_version_ok():
    r = sync_client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "crown-api"
    assert "version" in data and "git_sha" in data
    assert data["backend_url"].startswith("http")
