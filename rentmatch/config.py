from typing import List

from pydantic_settings import BaseSettings
from pydantic import field_validator
from sqlalchemy.engine import make_url


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://user:password@db:5432/rental_db"
    DATABASE_SSL: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    USER_MANAGEMENT_URL: str = "https://user-management.internal"
    PREFERENCES_API_URL: str = "http://localhost:8000"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Preferences wizard
    AUTOSAVE_DEBOUNCE_SECONDS: float = 0.5
    SUBMIT_NAVIGATION_COOLDOWN_SECONDS: float = 3.0

    # Matching
    MATCH_FULL_THRESHOLD: float = 0.8
    MATCHING_DEFAULT_LIMIT: int = 50
    MATCHING_RATE_LIMIT_TIMES: int = 30
    MATCHING_RATE_LIMIT_SECONDS: int = 60

    @field_validator("DATABASE_URL")
    def normalize_database_url(cls, v):
        """
        Re-renders the database URL so special characters in the password are escaped.
        """
        if v:
            try:
                return make_url(v).render_as_string(hide_password=False)
            except Exception:
                # Leave unparseable values for the engine to reject
                return v
        return v

    @field_validator("AUTOSAVE_DEBOUNCE_SECONDS", "SUBMIT_NAVIGATION_COOLDOWN_SECONDS")
    def non_negative_delay(cls, v):
        if v < 0:
            raise ValueError("delay must be >= 0")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
