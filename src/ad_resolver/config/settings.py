# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Configuration settings for the Ad Resolver."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Wrapper resolution
    wrapper_abort_limit: Optional[int] = None  # None or negative = unlimited
    allow_multiple_ads: bool = False  # Used when a <Wrapper> omits allowMultipleAds

    # Document fetching
    fetch_timeout: float = 30.0
    fetch_follow_redirects: bool = True
    user_agent: str = "ad-resolver/0.1.0"

    # Tracking beacons
    beacon_timeout: float = 5.0

    # Interfaces
    log_level: str = "INFO"
    default_player_width: int = 640
    default_player_height: int = 360


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
