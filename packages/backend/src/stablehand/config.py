"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with STABLEHAND_ prefix.

Learn: Both the broker and the rate limiter are in-memory and per-process,
so none of these settings point at shared infrastructure. Run a single
worker; multiple instances would each see only their own clients.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings

# HS256 keys must be at least 32 bytes
DEV_JWT_SECRET = "change-me-in-production-dev-only-secret"


class Settings(BaseSettings):
    """All app configuration. Set via STABLEHAND_* env vars."""

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # Auth (tokens are issued upstream; we only verify them)
    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Realtime broker
    realtime_heartbeat_seconds: float = 30.0
    realtime_history_size: int = 50  # events kept per channel
    realtime_max_pending_frames: int = 256  # undrained frames before a client is dropped

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_window_ms: int = 15 * 60 * 1000  # anonymous /api traffic
    rate_limit_max_requests: int = 100
    rate_limit_cleanup_seconds: float = 300.0

    model_config = {"env_prefix": "STABLEHAND_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment != "development"
            and self.jwt_secret == DEV_JWT_SECRET
        ):
            raise ValueError(
                "STABLEHAND_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        return self


# Singleton — import this everywhere
settings = Settings()
