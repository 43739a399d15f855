from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./gacha.db"
    secret_key: str = "change-me"
    log_level: str = "INFO"

    # Internal API security
    admin_api_key: str = ""
    merchant_api_key: str = ""

    # Draw quota and selection
    daily_draw_limit: int = 36
    default_draw_count: int = 7
    max_draw_count: int = 12
    exclusion_penalty_threshold: int = 3

    # Inventory
    inventory_max_slots: int = 200
    inventory_expiring_days: int = 7
    slot_claim_max_attempts: int = 3

    # Trip publication
    trip_dedup_window: int = 1000
    trip_min_places: int = 3

    # Redemption
    redemption_grace_seconds: int = 180
    # Calendar day boundary used for merchant code validity and daily quotas
    local_timezone: str = "UTC"
    redemption_expiry_worker_enabled: bool = False
    redemption_expiry_interval_seconds: int = 60

    # Dynamic configuration memoization
    config_cache_ttl_seconds: float = 30.0

    # Tracing
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None

    @field_validator("inventory_max_slots", "daily_draw_limit", "max_draw_count")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
