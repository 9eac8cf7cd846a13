"""
Configuration management for CareCadence
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "CareCadence"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database (opaque blob storage for settings, medicines and logs)
    DATABASE_URL: str = "sqlite:///./carecadence.db"
    DATABASE_ECHO: bool = False
    STATE_VERSION: int = 1

    # Hydration reminder defaults
    DEFAULT_DAILY_GOAL_ML: int = 2000
    DEFAULT_REMINDER_INTERVAL_MINUTES: int = 60
    DEFAULT_WINDOW_START: str = "07:00"
    DEFAULT_WINDOW_END: str = "21:00"
    DEFAULT_REMINDERS_ENABLED: bool = True
    GLASS_ML: int = 250
    BOTTLE_ML: int = 500
    SIP_ML: int = 100

    # Dose scheduling
    MIN_DOSE_GAP_MINUTES: int = 15
    MAX_DOSE_TIMES: int = 4
    DOSE_GRACE_MINUTES: Optional[int] = None  # None = end of the scheduled day
    OVERDUE_AFTER_MINUTES: int = 30
    DEFAULT_SNOOZE_MINUTES: int = 15

    # Background evaluation (0 disables the in-process ticker)
    TICK_INTERVAL_SECONDS: int = 60

    # Log retention and analysis
    LOG_RETENTION_DAYS: int = 7
    ADHERENCE_WINDOW_DAYS: int = 7
    REFILL_WARNING_DAYS: int = 3

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Persisted blob keys
class BlobKeys:
    SETTINGS = "settings"
    MEDICINES = "medicines"
    OCCURRENCE_LOG = "occurrence_log"


settings = get_settings()
