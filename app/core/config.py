"""
Application configuration.
Values come from environment variables / .env file. DATABASE_URL is the only
required setting; everything else has a development default.
"""
import logging
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DAY_OF_WEEK_CONVENTIONS = ("monday", "sunday")


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str

    # Which weekday index 0 refers to for TimeSlot.day_of_week.
    # "monday": 0=Monday .. 6=Sunday, "sunday": 0=Sunday .. 6=Saturday
    DAY_OF_WEEK_CONVENTION: str = "monday"

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Booking admission retries on lock timeouts / write conflicts
    ADMISSION_MAX_ATTEMPTS: int = 5
    ADMISSION_RETRY_BASE_DELAY: float = 0.05

    # Request throttling per API key
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 120
    USAGE_LOG_RETENTION_DAYS: int = 30

    # Domain event outbox
    OUTBOX_MAX_ATTEMPTS: int = 5
    OUTBOX_RETRY_DELAYS: list[int] = [1, 5, 30, 120, 600]  # seconds
    EVENTS_WEBHOOK_URL: str = ""
    EVENTS_WEBHOOK_TIMEOUT: float = 10.0

    # Development seed
    SEED_API_KEY: str = ""
    SEED_PROVIDER_NAME: str = "ReserveKit Dev Provider"

    @field_validator("DAY_OF_WEEK_CONVENTION")
    @classmethod
    def _check_convention(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in DAY_OF_WEEK_CONVENTIONS:
            raise ValueError(
                f"DAY_OF_WEEK_CONVENTION must be one of {', '.join(DAY_OF_WEEK_CONVENTIONS)}"
            )
        return value

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()

if settings.APP_ENV == "production" and settings.SEED_API_KEY:
    logger.warning("SEED_API_KEY is set in production; it will be ignored.")
