"""
Configuration system with environment-based settings.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Application
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    API_KEY_HEADER: str = "X-API-Key"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Database: plain str to avoid pydantic MultiHostUrl mangling the username
    POSTGRES_DSN: str = Field(..., description="PostgreSQL connection string")
    POSTGRES_POOL_SIZE: int = 20
    POSTGRES_MAX_OVERFLOW: int = 40
    POSTGRES_POOL_TIMEOUT: int = 30
    POSTGRES_ECHO: bool = False

    # Redis
    REDIS_DSN: RedisDsn = Field(..., description="Redis connection string")
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Scanner
    SCANNER_USER_AGENT: str = "FindableAI-Scanner/1.0 (SEO Analysis Tool)"
    SCANNER_ROBOTS_TIMEOUT: float = 5.0
    SCANNER_SITEMAP_TIMEOUT: float = 5.0
    SCANNER_PAGE_TIMEOUT: float = 15.0
    SCANNER_MAX_PAGE_BYTES: int = 5 * 1024 * 1024
    SCANNER_ALLOW_PRIVATE_HOSTS: bool = False  # Local development only

    # Rate Limiting
    RATE_LIMIT_REQUESTS_PER_MINUTE: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def postgres_url(self) -> str:
        """Async URL for SQLAlchemy + asyncpg."""
        url = self.POSTGRES_DSN
        for scheme in ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://"):
            if url.startswith(scheme):
                return "postgresql+asyncpg://" + url[len(scheme):]
        return url


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - created once per process."""
    return Settings()
