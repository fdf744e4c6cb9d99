from __future__ import annotations

import dataclasses

import pytest
from fastapi.testclient import TestClient

from dating_api.app import create_app
from dating_api.core import config as core_config
from dating_api.core.config import RateLimit
from dating_api.core.rate_limiter import SlidingWindowLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_limiter_counts_hits_over_trailing_window():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(clock)
    rule = RateLimit(limit=2, window_seconds=60)

    assert limiter.hit("login:1.2.3.4", rule) is None
    clock.now += 30
    assert limiter.hit("login:1.2.3.4", rule) is None
    clock.now += 10
    assert limiter.hit("login:1.2.3.4", rule) == pytest.approx(20.0)
    # other clients are counted separately
    assert limiter.hit("login:5.6.7.8", rule) is None

    # the first hit leaves the window, the second still counts
    clock.now += 21
    assert limiter.hit("login:1.2.3.4", rule) is None
    assert limiter.hit("login:1.2.3.4", rule) is not None


def test_limiter_forgets_idle_keys_when_full():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(clock)
    limiter.max_keys = 3
    rule = RateLimit(limit=1, window_seconds=10)
    for key in ("a", "b", "c"):
        limiter.hit(key, rule)
    clock.now += 11
    limiter.hit("d", rule)
    assert len(limiter) == 1


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("5/60", RateLimit(5, 60)),
        (None, RateLimit(20, 300)),
        ("", RateLimit(20, 300)),
        ("five/60", RateLimit(20, 300)),
        ("0/60", RateLimit(20, 300)),
        ("5", RateLimit(20, 300)),
    ],
)
def test_rate_limit_parse(raw, expected):
    assert RateLimit.parse(raw, RateLimit(20, 300)) == expected


def test_login_limit_comes_from_settings(db_env, monkeypatch):
    monkeypatch.setenv("AUTH_LOGIN_RATE_LIMIT", "2/60")
    core_config.get_settings.cache_clear()
    settings = core_config.get_settings()
    assert settings.login_rate_limit == RateLimit(2, 60)

    with TestClient(create_app(settings)) as client:
        body = {"identifier": "nobody", "password": "wrong-password"}
        assert client.post("/auth/login", json=body).status_code == 401
        assert client.post("/auth/login", json=body).status_code == 401
        blocked = client.post("/auth/login", json=body)
        assert blocked.status_code == 429
        assert int(blocked.headers["retry-after"]) >= 1

    # a new app starts with empty counters
    relaxed = dataclasses.replace(settings, login_rate_limit=RateLimit(100, 60))
    with TestClient(create_app(relaxed)) as client:
        assert client.post("/auth/login", json=body).status_code == 401
