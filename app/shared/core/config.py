from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from typing import Optional


class Settings(BaseSettings):
    """
    Main configuration for CloudWise.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """
    APP_NAME: str = "CloudWise"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # local, development, staging, production
    TESTING: bool = False

    @model_validator(mode='after')
    def validate_security_config(self) -> 'Settings':
        """Ensure critical production keys are present and valid."""
        if self.TESTING:
            return self

        if self.ENVIRONMENT == "production":
            if not self.DATABASE_URL:
                raise ValueError("DATABASE_URL is required in production.")
            if not self.JWT_SECRET or len(self.JWT_SECRET) < 32:
                raise ValueError("JWT_SECRET must be at least 32 characters in production.")
            if not self.ENCRYPTION_KEY or len(self.ENCRYPTION_KEY) < 32:
                raise ValueError("ENCRYPTION_KEY must be at least 32 characters in production.")

            localhost_origins = [o for o in self.CORS_ORIGINS if 'localhost' in o or '127.0.0.1' in o]
            if localhost_origins:
                import structlog
                structlog.get_logger().warning(
                    "cors_localhost_in_production",
                    origins=localhost_origins,
                    msg="CORS_ORIGINS contains localhost URLs in production mode"
                )

        return self

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./cloudwise.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Auth (HS256 bearer tokens, "sub" is the user id)
    JWT_SECRET: str = "change-me"
    JWT_AUDIENCE: Optional[str] = None

    # Credential encryption at rest (provider secrets)
    ENCRYPTION_KEY: Optional[str] = None

    # Security
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Notifications
    SLACK_BOT_TOKEN: Optional[str] = None
    SLACK_CHANNEL_ID: Optional[str] = None

    # Aggregation defaults
    DEFAULT_LOOKBACK_DAYS: int = 30
    MAX_AGGREGATION_ROWS: int = 1_000_000
    MAX_DATE_RANGE_DAYS: int = 366

    # Tunable heuristics (utilization percent, standard deviations)
    IDLE_UTILIZATION_THRESHOLD: float = 10.0
    ANOMALY_ZSCORE_THRESHOLD: float = 2.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings():
    """Returns a singleton instance of the application settings."""
    return Settings()
