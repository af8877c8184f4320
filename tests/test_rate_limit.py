"""
Tests for the per-client request limiter and its HTTP middleware
"""
from fastapi.testclient import TestClient

from resumerefresh.dashboard.app import create_app
from resumerefresh.utils.config import RateLimitConfig
from resumerefresh.utils.rate_limit import RateLimiter

from tests.conftest import FakeMailChannel


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ============================================================
# RateLimiter
# ============================================================


class TestRateLimiter:
    def test_allows_up_to_limit(self):
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())

        assert [limiter.hit("1.2.3.4") for _ in range(3)] == [0.0, 0.0, 0.0]
        assert limiter.hit("1.2.3.4") > 0
        assert limiter.remaining("1.2.3.4") == 0

    def test_clients_counted_separately(self):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())

        assert limiter.hit("1.1.1.1") == 0.0
        assert limiter.hit("2.2.2.2") == 0.0
        assert limiter.hit("1.1.1.1") > 0

    def test_window_slides(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)

        limiter.hit("c")
        clock.now += 30
        limiter.hit("c")
        assert limiter.hit("c") == 30.0

        clock.now += 30
        assert limiter.hit("c") == 0.0
        assert limiter.remaining("c") == 0

    def test_sweep_forgets_idle_clients(self, monkeypatch):
        monkeypatch.setattr(RateLimiter, "MAX_TRACKED_KEYS", 2)
        clock = FakeClock()
        limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)

        limiter.hit("a")
        limiter.hit("b")
        clock.now += 61
        limiter.hit("c")

        assert set(limiter._requests) == {"c"}


# ============================================================
# Middleware
# ============================================================


class TestRateLimitMiddleware:
    def test_429_after_limit(self, settings, db):
        settings.rate_limit = RateLimitConfig(max_requests=2, window_seconds=900)

        with TestClient(create_app(settings=settings, store=db, mail_channel=FakeMailChannel())) as client:
            assert client.get("/health").status_code == 200
            assert client.get("/health").status_code == 200
            response = client.get("/health")

        assert response.status_code == 429
        assert response.json()["error"] == "Too many requests from this IP, please try again later."
        assert int(response.headers["retry-after"]) > 0

    def test_forwarded_clients_limited_separately(self, settings, db):
        settings.rate_limit = RateLimitConfig(max_requests=1, window_seconds=900)

        with TestClient(create_app(settings=settings, store=db, mail_channel=FakeMailChannel())) as client:
            first = client.get("/health", headers={"X-Forwarded-For": "10.0.0.1"})
            second = client.get("/health", headers={"X-Forwarded-For": "10.0.0.2"})
            again = client.get("/health", headers={"X-Forwarded-For": "10.0.0.1"})

        assert (first.status_code, second.status_code, again.status_code) == (200, 200, 429)

    def test_disabled(self, settings, db):
        settings.rate_limit = RateLimitConfig(enabled=False, max_requests=1)

        with TestClient(create_app(settings=settings, store=db, mail_channel=FakeMailChannel())) as client:
            statuses = [client.get("/health").status_code for _ in range(3)]

        assert statuses == [200, 200, 200]
