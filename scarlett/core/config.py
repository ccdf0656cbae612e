"""
Service configuration settings
"""
import os
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # App
    APP_NAME: str = "Scarlett Scheduler"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")  # development, staging, production

    # Redis (progress history + in-flight sessions)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

    # Content store
    CONTENT_BASE_URL: str = os.getenv("CONTENT_BASE_URL", "http://localhost:3000/api")
    CONTENT_TIMEOUT_SECONDS: float = float(os.getenv("CONTENT_TIMEOUT_SECONDS", "10"))

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Scheduling
    SESSION_SIZE: int = 20
    REQUEST_RETENTION: float = 0.9
    MAXIMUM_INTERVAL: int = 36500  # 100 years
    ENABLE_FUZZ: bool = True

    # Persistence
    SESSION_TTL_SECONDS: int = 86400
    PROGRESS_HISTORY_LIMIT: int = 50

    # Monitoring
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


settings = Settings()
