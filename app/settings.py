from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    db_path: Path = Field(default=Path("data/gdacs-sync.db"), validation_alias="DB_PATH")

    feed_url: str = Field(
        default="https://www.gdacs.org/xml/rss.xml", validation_alias="FEED_URL"
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; gdacs-sync/0.1)",
        validation_alias="USER_AGENT",
    )
    fetch_timeout_seconds: float = Field(
        default=10.0, gt=0, validation_alias="FETCH_TIMEOUT_SECONDS"
    )
    # Base of the retry backoff reported after a failed fetch.
    poll_interval_seconds: int = Field(
        default=300, gt=0, validation_alias="POLL_INTERVAL_SECONDS"
    )

    # Magnitude words accepted in population phrases ("16 thousand", "1.2M").
    population_multipliers: dict[str, int] = Field(
        default={"thousand": 1_000, "million": 1_000_000, "k": 1_000, "m": 1_000_000},
        validation_alias="POPULATION_MULTIPLIERS",
    )

    alerts_retention_days: int = Field(
        default=30, validation_alias="ALERTS_RETENTION_DAYS"
    )
    stale_alert_hours: int = Field(default=72, validation_alias="STALE_ALERT_HOURS")
