"""
Configuration management for the POS sync service.

Secrets and connection strings come from environment variables (or a local
.env file); everything else has a development-friendly default.
"""

from typing import List, Optional
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    POS partner tuning lives under the ``POS_`` prefix so it can be adjusted
    per deployment without code changes.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    # Database Configuration
    database_url: str = "sqlite:///./pos_sync.db"
    log_sql_queries: bool = False
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # JWT Authentication - MUST be overridden in production
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30

    cors_origins: List[str] = ["http://localhost:3000"]

    # Environment Settings
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # POS partner HTTP
    POS_DEFAULT_API_URL: str = "https://api-ru.iiko.services"
    POS_HTTP_TIMEOUT_SECONDS: float = 30.0
    POS_TOKEN_SAFETY_MARGIN_SECONDS: int = 60
    POS_TOKEN_DEFAULT_TTL_SECONDS: int = 3600

    # Outbound order queue
    POS_ORDER_SYNC_INTERVAL_SECONDS: int = 60
    POS_ORDER_SYNC_BATCH_SIZE: int = 10
    POS_ORDER_SYNC_CONCURRENCY: int = 3
    POS_ORDER_MAX_RETRIES: int = 3
    POS_SYNC_RETRY_BASE_DELAY_SECONDS: int = 30
    POS_SYNC_RETRY_MAX_DELAY_SECONDS: int = 900
    # Entries left in processing longer than this are claimable again
    POS_ORDER_PROCESSING_LEASE_SECONDS: int = 600

    # Inbound menu sync
    POS_MENU_SYNC_INTERVAL_MINUTES: int = 30
    POS_MENU_DEFAULT_STOCK: int = 999
    POS_MENU_SYNC_STOP_LISTS: bool = True

    # Scheduler
    POS_SCHEDULER_ENABLED: bool = True

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("POS_ORDER_SYNC_CONCURRENCY", "POS_ORDER_SYNC_BATCH_SIZE")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Returns:
        Settings instance with environment variables loaded
    """
    return Settings()


# Export settings instance for easy import
settings = get_settings()


def validate_production_config(current: Optional[Settings] = None):
    """Validate configuration for production deployment."""
    current = current or settings
    if not current.is_production:
        return

    security_issues = []

    if current.jwt_secret_key == "dev-secret-change-in-production":
        security_issues.append("JWT_SECRET_KEY is using default value")

    if current.debug:
        security_issues.append("DEBUG is enabled in production")

    if current.database_url.startswith("sqlite"):
        security_issues.append("DATABASE_URL points at SQLite")

    if security_issues:
        raise ValueError(
            f"Production security issues detected: {', '.join(security_issues)}"
        )


# Validate on import if in production
if settings.is_production:
    validate_production_config()
