"""End-to-end tests for the image API with mock providers."""

import base64

import httpx
import pytest
from fastapi.testclient import TestClient

from snapname.app.main import create_app
from snapname.app.middleware.rate_limit import SlidingWindowRateLimiter
from snapname.app.providers.mock import MockGenerationService, MockImageStore
from snapname.app.providers.retry import RetryPolicy

DATA_URI = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8\xff\xe0" + b"\x10" * 64).decode()
FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay=0.01, max_delay=0.05)


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return httpx.HTTPStatusError(
        f"HTTP {status_code}", request=request, response=httpx.Response(status_code, request=request)
    )


@pytest.fixture
def store():
    return MockImageStore()


@pytest.fixture
def generator():
    return MockGenerationService()


@pytest.fixture
def client(store, generator):
    app = create_app(
        image_store=store,
        generator=generator,
        limiter=SlidingWindowRateLimiter(max_requests=1000, window_seconds=900),
        retry_policy=FAST_RETRY,
    )
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


class TestUpload:

    def test_upload(self, client, store):
        resp = client.post("/api/image/upload", json={"image": DATA_URI})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["imageUrl"].startswith("https://mock.images.local/nicknames/")
        assert body["public_id"] in store.images

    def test_upload_missing_image(self, client):
        resp = client.post("/api/image/upload", json={})

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "No image provided"}

    def test_upload_invalid_image(self, client, store):
        resp = client.post("/api/image/upload", json={"image": "data:text/plain;base64,aGk="})

        assert resp.status_code == 400
        assert resp.json()["error"] == "Unsupported file type. Please use JPEG, PNG, or WebP"
        assert store.calls["upload"] == 0

    def test_upload_survives_transient_failure(self, client, store):
        store.failures.add(httpx.ConnectError("reset"))

        resp = client.post("/api/image/upload", json={"image": DATA_URI})

        assert resp.status_code == 200
        assert store.calls["upload"] == 2


class TestGenerateNickname:

    def test_generate_then_cached(self, client, generator):
        payload = {"imageUrl": "https://mock.images.local/nicknames/cat.png"}

        first = client.post("/api/image/generate-nickname", json=payload)
        second = client.post("/api/image/generate-nickname", json=payload)

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert second.json()["data"] == first.json()["data"]
        assert set(first.json()["data"]) == {"nickname", "analysis"}
        assert generator.calls["describe_image"] == 1

    def test_missing_url(self, client):
        resp = client.post("/api/image/generate-nickname", json={})

        assert resp.status_code == 400
        assert resp.json()["error"] == "No image URL provided"

    def test_permanent_upstream_error_is_passed_through(self, client, generator):
        generator.failures.add(_status_error(401))

        resp = client.post(
            "/api/image/generate-nickname", json={"imageUrl": "https://img.example/a.png"}
        )

        assert resp.status_code == 401
        assert resp.json()["success"] is False
        assert generator.calls["describe_image"] == 1

    def test_exhausted_server_errors_become_bad_gateway(self, client, generator):
        generator.failures.add(*[_status_error(503)] * 3)

        resp = client.post(
            "/api/image/generate-nickname", json={"imageUrl": "https://img.example/a.png"}
        )

        assert resp.status_code == 502
        assert generator.calls["describe_image"] == 3

    def test_unreachable_upstream_is_service_unavailable(self, client, generator):
        generator.failures.add(*[httpx.ConnectError("down")] * 3)

        resp = client.post(
            "/api/image/generate-nickname", json={"imageUrl": "https://img.example/a.png"}
        )

        assert resp.status_code == 503


class TestGenerateImage:

    def test_generate_image(self, client, store):
        resp = client.post("/api/image/generate-image", json={"prompt": "a corgi astronaut"})

        assert resp.status_code == 200
        assert resp.json()["public_id"] in store.images

    def test_blank_prompt(self, client):
        resp = client.post("/api/image/generate-image", json={"prompt": "   "})

        assert resp.status_code == 400
        assert resp.json()["error"] == "No prompt provided"


class TestManageImages:

    def test_list_and_delete(self, client):
        public_id = client.post("/api/image/upload", json={"image": DATA_URI}).json()["public_id"]

        images = client.get("/api/image/list").json()["images"]
        assert [image["public_id"] for image in images] == [public_id]

        resp = client.delete(f"/api/image/{public_id}")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Image deleted successfully"}

        resp = client.delete(f"/api/image/{public_id}")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Image not found or already deleted"

    def test_cleanup(self, client):
        ids = [
            client.post("/api/image/upload", json={"image": DATA_URI}).json()["public_id"]
            for _ in range(2)
        ]

        resp = client.post("/api/image/cleanup")

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Cleanup completed"
        assert body["deletedCount"] == 2
        assert sorted(body["deletedImages"]) == sorted(ids)
        assert body["failedImages"] == []


class TestRateLimitedApi:

    def test_api_requests_are_limited(self, store, generator):
        app = create_app(
            image_store=store,
            generator=generator,
            limiter=SlidingWindowRateLimiter(max_requests=2, window_seconds=900),
            retry_policy=FAST_RETRY,
        )
        with TestClient(app) as client:
            for _ in range(2):
                assert client.get("/api/image/list").status_code == 200
            resp = client.get("/api/image/list")
            assert resp.status_code == 429
            assert resp.json()["retryAfter"] >= 1

            # Health checks are never limited
            assert client.get("/health").status_code == 200

    def test_fresh_limiter_is_used_as_given(self, store, generator):
        """An empty limiter passed in is the one the app enforces."""
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=900)
        assert len(limiter) == 0

        app = create_app(image_store=store, generator=generator, limiter=limiter)
        with TestClient(app) as client:
            assert app.state.rate_limiter is limiter
            for _ in range(2):
                resp = client.get("/api/image/list")
                assert resp.status_code == 200
                assert resp.headers["X-RateLimit-Limit"] == "2"
            assert client.get("/api/image/list").status_code == 429

        assert len(limiter) == 1

    def test_request_id_echoed(self, client):
        resp = client.get("/api/image/list", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
