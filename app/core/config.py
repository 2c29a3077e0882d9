"""Configuration management for the Gamification Service."""

from typing import List, Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
import json


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    # Application
    APP_NAME: str = "Campus Gamification Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production|test)$")
    SERVICE_NAME: str = "gamification-service"
    SERVICE_PORT: int = 8005

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./gamification.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Redis Cache
    REDIS_URL: Optional[str] = None
    CACHE_TTL: int = 3600  # 1 hour

    # JWT
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 60
    ORGANIZER_ROLES: List[str] = Field(default_factory=lambda: ["organizer", "system"])

    # Levels
    POINTS_PER_LEVEL: int = 100

    # Achievement thresholds
    ACHIEVEMENT_ATTENDANCE_COUNT: int = 3
    ACHIEVEMENT_NETWORKING_COUNT: int = 5
    ACHIEVEMENT_ENGAGEMENT_POINTS: int = 50
    ACHIEVEMENT_FEEDBACK_COUNT: int = 3
    ACHIEVEMENT_SOCIAL_COUNT: int = 3

    # Challenges
    DEFAULT_CHALLENGE_POINTS: int = 10
    QUIZ_ALLOW_RESUBMISSION: bool = True
    GENERATED_CHALLENGE_DAYS: int = 7

    # Leaderboard
    LEADERBOARD_DEFAULT_LIMIT: int = 20
    LEADERBOARD_SIZE: int = 100
    LEADERBOARD_CACHE_TTL: int = 300  # 5 minutes

    # Content generation (Gemini REST API)
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GENERATION_TIMEOUT: float = 30.0
    GENERATION_MAX_ITEMS: int = 20

    # Logging
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    LOG_FORMAT: str = Field(default="json", pattern="^(json|plain)$")

    # CORS
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    @field_validator("CORS_ORIGINS", "ORGANIZER_ROLES", mode="before")
    def parse_list(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(",") if item.strip()]
        return v

    # Monitoring
    ENABLE_METRICS: bool = True

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
