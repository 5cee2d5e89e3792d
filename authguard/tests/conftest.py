import os

import pytest
from fastapi.testclient import TestClient

# Set test environment before importing app/settings
os.environ["JWT_SECRET"] = "test-jwt-secret-value-0123456789abcdef"
os.environ["JWT_ACCESS_TTL_SECONDS"] = "60"
os.environ["LOG_JSON"] = "false"

from authguard.app.config.settings import Settings
from authguard.app.main import create_app
from authguard.app.services.rate_limit import RateLimitConfig, RateLimiter

ADMIN_KEY = "test-admin-key"

TEST_CONFIG = {
    "max_attempts": 5,
    "window_ms": 60_000,
    "block_duration_ms": 30_000,
    "backoff_multiplier": 2,
    "reset_period_ms": 90_000,
}


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(RateLimitConfig(**TEST_CONFIG), clock=clock)


@pytest.fixture
def app_settings():
    return Settings(
        admin_api_key=ADMIN_KEY,
        log_json=False,
        rate_limit_max_attempts=TEST_CONFIG["max_attempts"],
        rate_limit_window_ms=TEST_CONFIG["window_ms"],
        rate_limit_block_duration_ms=TEST_CONFIG["block_duration_ms"],
        rate_limit_backoff_multiplier=TEST_CONFIG["backoff_multiplier"],
        rate_limit_reset_period_ms=TEST_CONFIG["reset_period_ms"],
        rate_limit_sweep_interval_ms=None,
    )


@pytest.fixture
def client(app_settings, clock):
    app = create_app(settings=app_settings, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def registered_user(client):
    """Register alice and clear the registration throttle record."""
    response = client.post("/auth/register", json={"username": "alice", "password": "correct-horse"})
    assert response.status_code == 201
    client.app.state.rate_limiter.reset_all()
    return {"username": "alice", "password": "correct-horse"}
