"""Application configuration loaded from environment variables and .env."""
import os
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="COACHING_",
        env_file=os.path.join(REPO_ROOT, ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_path: str = os.path.join(REPO_ROOT, "data", "nutrition.db")
    db_timeout_seconds: float = 30.0

    # Remote client-profile service; profiles come from the database when unset
    profile_service_url: Optional[str] = None
    profile_service_timeout: float = 10.0

    # Targets
    review_interval_days: int = 28

    # Rule check scheduler
    scheduler_enabled: bool = False
    scheduler_interval_minutes: float = 60.0

    # API configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8083
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
