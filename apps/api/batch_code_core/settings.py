from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration, loaded from the environment or a .env file.
    """
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    DATABASE_URL: str | None = None

    # Batch codes
    BATCH_CODE_TIMEZONE: str = "UTC"
    BATCH_CODE_MAX_ATTEMPTS: int = 3
    BATCH_CODE_DEADLINE_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @field_validator("BATCH_CODE_MAX_ATTEMPTS")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("BATCH_CODE_MAX_ATTEMPTS must be >= 1")
        return v

    @field_validator("BATCH_CODE_DEADLINE_SECONDS")
    @classmethod
    def positive_deadline(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("BATCH_CODE_DEADLINE_SECONDS must be > 0")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
