"""Tests for the health endpoint."""

from fastapi.testclient import TestClient

from snapname.app.main import create_app
from snapname.app.providers.mock import MockGenerationService, MockImageStore


class UnhealthyStore(MockImageStore):
    async def health_check(self, timeout: float = 2.0) -> bool:
        return False


class CountingStore(MockImageStore):
    def __init__(self):
        super().__init__()
        self.health_checks = 0

    async def health_check(self, timeout: float = 2.0) -> bool:
        self.health_checks += 1
        return True


def test_health_ok():
    app = create_app(image_store=MockImageStore(), generator=MockGenerationService())
    with TestClient(app) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    components = data["components"]
    assert components["cache"] == {"status": "ok", "entries": 0}
    assert components["rate_limiter"]["sweeper_running"] is True
    assert components["providers"]["details"] == {
        "mock_image_store": True,
        "mock_generation": True,
    }


def test_health_degraded_when_provider_down():
    app = create_app(image_store=UnhealthyStore(), generator=MockGenerationService())
    with TestClient(app) as client:
        data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["components"]["providers"]["status"] == "degraded"
    assert data["components"]["providers"]["details"]["mock_image_store"] is False


def test_health_counts_cached_nicknames():
    app = create_app(image_store=MockImageStore(), generator=MockGenerationService())
    with TestClient(app) as client:
        client.post("/api/image/generate-nickname", json={"imageUrl": "https://img.example/a.png"})
        data = client.get("/health").json()

    assert data["components"]["cache"]["entries"] == 1


def test_health_reports_cached_provider_status():
    """Repeated /health calls reuse the background check result."""
    store = CountingStore()
    app = create_app(image_store=store, generator=MockGenerationService())
    with TestClient(app) as client:
        for _ in range(50):
            assert client.get("/health").status_code == 200

    # One check at startup; the 30 s background interval never elapses here
    assert store.health_checks == 1
