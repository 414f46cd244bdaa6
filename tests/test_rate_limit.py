import pytest

from main import FixedWindowRateLimiter
from nasa_service import Settings


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_quota_then_rejection():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(100, 900, clock=clock)

    for i in range(100):
        result = limiter.consume("10.0.0.1")
        assert result.allowed
        assert result.remaining == 99 - i

    clock.now += 300
    rejected = limiter.consume("10.0.0.1")
    assert not rejected.allowed
    assert rejected.retry_after == 600


def test_retry_after_never_exceeds_remaining_window():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    limiter.consume("a")

    for elapsed in (0.0, 0.4, 1.0, 30.0, 58.5):
        clock.now = 1000.0 + elapsed
        result = limiter.consume("a")
        assert not result.allowed
        assert 1 <= result.retry_after <= 60 - elapsed

    clock.now = 1059.9
    assert limiter.consume("a").retry_after == 1


def test_expired_windows_are_forgotten():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(5, 60, clock=clock)
    for i in range(1000):
        limiter.consume(f"10.0.{i // 256}.{i % 256}")
    assert len(limiter) == 1000

    clock.now += 3600
    limiter.consume("10.9.9.9")

    assert len(limiter) == 1


def test_live_windows_survive_a_sweep():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    limiter.consume("old")
    clock.now += 50
    limiter.consume("recent")

    clock.now += 20
    limiter.consume("new")

    assert len(limiter) == 2
    assert not limiter.consume("recent").allowed


def test_window_resets():
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(2, 60, clock=clock)
    assert limiter.consume("a").allowed
    assert limiter.consume("a").allowed
    assert not limiter.consume("a").allowed

    clock.now += 60
    assert limiter.consume("a").allowed


def test_clients_are_counted_separately():
    limiter = FixedWindowRateLimiter(1, 60, clock=FakeClock())
    assert limiter.consume("a").allowed
    assert not limiter.consume("a").allowed
    assert limiter.consume("b").allowed


def test_reset():
    limiter = FixedWindowRateLimiter(1, 60, clock=FakeClock())
    limiter.consume("a")
    limiter.consume("b")
    limiter.reset("a")
    assert limiter.consume("a").allowed
    assert not limiter.consume("b").allowed
    limiter.reset()
    assert limiter.consume("b").allowed


@pytest.mark.parametrize("max_requests,window", [(0, 60), (10, 0)])
def test_invalid_configuration(max_requests, window):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(max_requests, window)


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("RATE_LIMIT_MAX_REQUESTS", raising=False)
    monkeypatch.delenv("RATE_LIMIT_WINDOW_SECONDS", raising=False)
    monkeypatch.delenv("NASA_API_KEY", raising=False)

    settings = Settings()

    assert settings.rate_limit_max_requests == 100
    assert settings.rate_limit_window_seconds == 900
    assert settings.nasa_api_key == "DEMO_KEY"
    assert settings.using_demo_key


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "5")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "30")
    monkeypatch.setenv("NASA_API_BASE_URL", "http://localhost:9999/")

    settings = Settings()

    assert settings.rate_limit_max_requests == 5
    assert settings.rate_limit_window_seconds == 30
    assert settings.nasa_base_url == "http://localhost:9999"


def test_app_rejects_request_over_quota(build_client, upstream):
    upstream.on("/planetary/apod", json={"date": "2025-01-07"})
    client = build_client(limiter=FixedWindowRateLimiter(3, 60))

    for _ in range(3):
        assert client.get("/api/nasa/apod").status_code == 200

    res = client.get("/api/nasa/apod")

    assert res.status_code == 429
    body = res.json()
    assert body["success"] is False
    assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    retry_after = int(res.headers["retry-after"])
    assert 1 <= retry_after <= 60
    assert body["error"]["retryAfter"] == retry_after
    assert len(upstream.requests) == 3


def test_client_errors_count_against_quota(build_client, upstream):
    client = build_client(limiter=FixedWindowRateLimiter(2, 60))

    assert client.get("/api/nasa/mars-rovers/unknown/photos").status_code == 400
    assert client.get("/api/nasa/search").status_code == 400
    assert client.get("/api/nasa/search?q=moon").status_code == 429
    assert upstream.requests == []
