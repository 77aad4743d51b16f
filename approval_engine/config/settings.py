"""Application Settings - Central Configuration"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "approval_engine_dev"

    # Directory (role lookups)
    directory_base_url: str = "http://localhost:8081"
    directory_api_key: str = ""
    directory_timeout_seconds: float = 10.0

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # Engine concurrency
    lock_timeout_seconds: float = 5.0  # Bounded wait for the per-instance lock
    max_conflict_retries: int = 3  # Internal retries on concurrent modification

    # Scheduler
    sweep_interval_seconds: int = 60  # Timeout sweep cadence
    reminder_check_minutes: int = 15  # How often reminder candidates are scanned
    reminder_interval_hours: float = 24.0  # Minimum gap between reminders per step

    # Environment
    environment: str = "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
