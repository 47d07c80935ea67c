"""Application configuration using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    # Quotes
    USE_LIVE_QUOTES: bool = True  # False serves synthetic quotes only
    QUOTE_RATE_LIMIT_DELAY_SECONDS: float = 0.2
    PRICE_HISTORY_PERIOD: str = "5d"
    FETCH_FUNDAMENTALS: bool = True

    # Session
    AUTO_REFRESH_INTERVAL_SECONDS: float = 15.0
    DEFAULT_HOLDINGS_PATH: str = "holdings.xlsx"


@lru_cache
def get_settings() -> Settings:
    return Settings()
