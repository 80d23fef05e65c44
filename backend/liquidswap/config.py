"""Application configuration management using Pydantic Settings."""

from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./liquidswap.db"
    DATABASE_ECHO: bool = False

    # API
    API_V1_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str] = ['http://localhost:3000']

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Rate limiting: offer creation (also used for counter-offers)
    OFFER_RATE_LIMIT_PER_MINUTE: int = 5
    OFFER_RATE_LIMIT_WINDOW_SECONDS: float = 60
    OFFER_COOLDOWN_SECONDS: float = 30
    OFFER_RATE_LIMIT_PER_HOUR: int = 20

    # Rate limiting: chat messages, checked by the chat service through the shared limiter
    MESSAGE_RATE_LIMIT_PER_MINUTE: int = 20
    MESSAGE_COOLDOWN_SECONDS: float = 10

    # Rate limiting: likes / interest markers
    LIKE_RATE_LIMIT_PER_MINUTE: int = 30
    LIKE_COOLDOWN_SECONDS: float = 5

    # Negotiation
    REVALIDATE_ON_ACCEPT: bool = True  # re-check item conflicts when an offer is accepted

    # Realtime
    REALTIME_RETRY_SECONDS: float = 5
    SSE_PING_SECONDS: int = 15

    # Hydration
    PROFILE_CACHE_SIZE: int = 256

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> List[str]:
        """Parse CORS_ORIGINS from JSON string to list."""
        if isinstance(v, str):
            return json.loads(v)
        return v


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()
