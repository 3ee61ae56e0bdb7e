"""
API configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All values come from environment variables or a .env file; no hardcoded
URLs or credentials.

CHANGELOG:
- 2026-10-16: Initial creation, replaces ad-hoc os.environ lookups (STORY-028)

TODO:
- None
"""

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings


class ApiSettings(BaseSettings):
    """Billing and insights API configuration.

    Attributes:
        database_url: SQLAlchemy async URL of the TimescaleDB instance.
        redis_url: Redis URL used for the insights cache.
        meter_tokens: Comma-separated ``token:meter_id`` pairs.
        cache_ttl_s: Seconds a computed insights payload stays cached.
    """

    database_url: str
    redis_url: str
    meter_tokens: str
    cache_ttl_s: int = 60

    @field_validator("database_url")
    @classmethod
    def database_url_must_be_async(cls, v: str) -> str:
        """Require an asyncpg URL; the session factory is async only."""
        if not v.startswith("postgresql+asyncpg://"):
            raise ValueError("DATABASE_URL must use the postgresql+asyncpg:// scheme")
        return v

    @field_validator("cache_ttl_s")
    @classmethod
    def cache_ttl_must_be_positive(cls, v: int) -> int:
        """Validate cache TTL is at least one second."""
        if v < 1:
            raise ValueError("CACHE_TTL_S must be >= 1")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def load_settings() -> ApiSettings:
    """Load settings, turning missing variables into a readable error.

    Returns:
        ApiSettings: Validated settings.

    Raises:
        RuntimeError: If a required environment variable is missing or a
            value fails validation.
    """
    try:
        return ApiSettings()
    except ValidationError as exc:
        missing = [
            str(err["loc"][0]).upper() for err in exc.errors() if err["type"] == "missing"
        ]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            ) from exc
        raise RuntimeError(f"Invalid configuration: {exc}") from exc
