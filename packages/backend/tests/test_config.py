"""Settings tests — env prefix and the production secret guard."""

import pytest
from pydantic import ValidationError

from stablehand.config import DEV_JWT_SECRET, Settings


def test_defaults():
    s = Settings()
    assert s.realtime_history_size == 50
    assert s.realtime_heartbeat_seconds == 30.0
    assert s.rate_limit_window_ms == 15 * 60 * 1000
    assert s.rate_limit_max_requests == 100


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("STABLEHAND_REALTIME_HISTORY_SIZE", "10")
    monkeypatch.setenv("STABLEHAND_RATE_LIMIT_ENABLED", "false")
    s = Settings()
    assert s.realtime_history_size == 10
    assert s.rate_limit_enabled is False


def test_production_requires_real_secret(monkeypatch):
    monkeypatch.setenv("STABLEHAND_ENVIRONMENT", "production")
    monkeypatch.delenv("STABLEHAND_JWT_SECRET", raising=False)
    with pytest.raises(ValidationError, match="STABLEHAND_JWT_SECRET"):
        Settings()


def test_production_with_secret(monkeypatch):
    monkeypatch.setenv("STABLEHAND_ENVIRONMENT", "production")
    monkeypatch.setenv("STABLEHAND_JWT_SECRET", "s3cret-value")
    assert Settings().jwt_secret == "s3cret-value"


def test_dev_secret_long_enough_for_hs256():
    """PyJWT warns about HMAC keys shorter than 32 bytes."""
    assert len(DEV_JWT_SECRET.encode()) >= 32
    assert Settings().jwt_secret == DEV_JWT_SECRET
