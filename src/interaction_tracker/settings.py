from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackerSettings(BaseSettings):
    """Tracker configuration, read from INTERACTION_TRACKER_* env vars or .env."""

    model_config = SettingsConfigDict(
        env_prefix="INTERACTION_TRACKER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    ingestion_url: str = "http://localhost:54321/functions/v1/update-product-analytics"
    storage_key: str = Field(default="pending_product_interactions", min_length=1)

    max_batch_size: int = Field(default=75, ge=1)
    max_stored_interactions: int = Field(default=500, ge=1)
    max_retry_attempts: int = Field(default=3, ge=1)

    delivery_timeout_sec: float = Field(default=10.0, gt=0)
    auto_flush_interval_sec: Optional[float] = Field(default=None, gt=0)
    flush_on_close: bool = True

    tracker_id: str = "interactions"


@lru_cache()
def get_settings() -> TrackerSettings:
    return TrackerSettings()
