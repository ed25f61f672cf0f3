# backend/nakksha/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import BRAND_NAME, DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the availability engine."""

    app_name: str = BRAND_NAME
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Deployment environment name"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Storage
    database_url: str = Field(
        default="sqlite:///./nakksha.db",
        description="SQLAlchemy URL for the primary database",
    )
    database_pool_size: int = Field(default=5, description="Connection pool size (non-SQLite)")
    database_max_overflow: int = Field(default=10, description="Pool overflow (non-SQLite)")

    # Redis backs the cache, the pattern-update lock and the Celery broker.
    # An empty value disables Redis and switches the cache to in-memory mode.
    redis_url: Optional[str] = "redis://localhost:6379"
    celery_broker_url: Optional[str] = Field(
        default=None, description="Overrides redis_url as the Celery broker"
    )

    # Cache TTLs (seconds)
    public_slots_cache_ttl: int = Field(
        default=30, description="TTL for the public available-slots query"
    )
    patterns_cache_ttl: int = Field(default=180, description="TTL for a consultant's pattern list")

    # Slot generation
    slot_generation_max_days: int = Field(
        default=90, description="Largest allowed generation range in days"
    )
    slot_batch_size: int = Field(default=100, description="Rows inserted per transaction")
    slot_duration_minutes: Optional[int] = Field(
        default=None,
        description="Split each pattern into slots of this length; None keeps one slot per pattern",
    )
    rolling_generation_days: int = Field(
        default=30, description="Horizon kept populated by the scheduled generation job"
    )
    bulk_replace_generation_days: int = Field(
        default=30, description="Days generated right after a bulk pattern replace"
    )
    consultant_slots_default_days: int = Field(
        default=30, description="Default window for the consultant slot listing"
    )

    # Public query
    public_slots_default_days: int = 14
    public_slots_default_limit: int = 100
    public_slots_max_limit: int = 200

    # Locks
    pattern_lock_ttl_seconds: int = Field(
        default=30, description="TTL of the per-consultant pattern update lock"
    )

    default_timezone: str = DEFAULT_TIMEZONE

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("slot_duration_minutes")
    @classmethod
    def _validate_slot_duration(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("slot_duration_minutes must be positive")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def get_broker_url(self) -> str:
        """Broker URL for Celery, falling back to the Redis cache URL."""
        return self.celery_broker_url or self.redis_url or "redis://localhost:6379/0"


settings = Settings()
