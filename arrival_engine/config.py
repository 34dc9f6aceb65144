"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "arrival-engine"
    debug: bool = False
    log_level: str = "INFO"

    # Detection cycle
    poll_interval_seconds: float = 25.0
    rule_refresh_minutes: int = 3

    # Signal ingestion
    signal_max_age_seconds: int = 120

    # Persistence: "file" writes one JSON document per key under data_dir
    storage_backend: str = "file"
    data_dir: str = ".arrival-engine"

    model_config = {"env_prefix": "ARRIVAL_"}


settings = Settings()
