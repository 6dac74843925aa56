"""
Tests for health check endpoints.
"""


def test_healthz_endpoint(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "matchmaking-engine"}


def test_readyz_memory_backend(client, monkeypatch):
    monkeypatch.setattr("app.routes.health.settings.STORE_BACKEND", "memory")

    response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["store"] == {"ok": True, "backend": "memory"}
    assert "database" not in data["checks"]


def test_readyz_database_unhealthy(client, monkeypatch):
    async def unhealthy():
        return {"healthy": False, "error": "connection refused"}

    monkeypatch.setattr("app.routes.health.settings.STORE_BACKEND", "postgres")
    monkeypatch.setattr("app.routes.health.settings.DATABASE_URL", "postgresql://db/test")
    monkeypatch.setattr("app.routes.health.db_health_check", unhealthy)
    monkeypatch.setattr("app.routes.health.settings.REDIS_URL", None)

    response = client.get("/readyz")

    assert response.status_code == 503
    checks = response.json()["checks"]
    assert checks["database"]["ok"] is False
    assert checks["database"]["error"] == "connection refused"
