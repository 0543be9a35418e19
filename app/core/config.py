"""Application configuration."""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # Dialer
    dialer_api_url: str = "http://localhost:3004/api"
    dialer_campaign_id: str = "MEDICARE_EYEWEAR_2025"
    dialer_timeout_seconds: float = 10.0
    dialer_breaker_threshold: int = 5
    dialer_breaker_reset_ms: int = 60000

    # Call sessions
    agent_extensions: List[str] = ["8001", "8002", "8003", "8004", "8005", "8006"]
    max_validation_retries: int = 3
    sweep_interval_seconds: float = 5.0  # 0 disables the background sweep

    # Business hours (ISO weekdays, 1 = Monday)
    business_timezone: str = "America/New_York"
    business_days: List[int] = [1, 2, 3, 4, 5]
    business_start: str = "09:00"
    business_end: str = "17:45"
    callback_hour: int = 10

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
