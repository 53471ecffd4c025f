"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional, Union
from zoneinfo import ZoneInfo
import os

from ballotguard.core.constants import ACCESS_TOKEN_EXPIRE_MINUTES as DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Database - Support both full URL and individual components
    DATABASE_URL: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: Optional[str] = None
    POSTGRES_DB: Optional[str] = None

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ADMIN_PASSWORD: str = "adminpass"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES

    # CORS - Can be a list or comma-separated string
    CORS_ORIGINS: Union[list, str] = ["*"]

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    # Application
    APP_TITLE: str = "BallotGuard"
    APP_DESCRIPTION: str = "Time-boxed, one-ballot-per-voter elections with resilient status and tallies"
    APP_VERSION: str = "1.0.0"

    # Environment
    ENVIRONMENT: str = "development"  # development, staging, production

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL

    # Election clock
    ELECTION_TIMEZONE: str = "UTC"

    # Database Connection Pool Configuration
    DB_POOL_SIZE: int = 15
    DB_MAX_OVERFLOW: int = 25

    # Storage timeouts and worker pool for bounded queries
    DB_QUERY_TIMEOUT_SECONDS: float = 5.0
    DB_WRITE_TIMEOUT_SECONDS: float = 5.0
    DB_WORKER_THREADS: int = 16

    # Connection monitor
    DB_SLOW_QUERY_THRESHOLD_MS: float = 1000.0
    DB_MAX_RECONNECT_ATTEMPTS: int = 5
    DB_RECONNECT_BASE_DELAY_SECONDS: float = 1.0
    DB_RECONNECT_MAX_DELAY_SECONDS: float = 30.0
    DB_HEALTH_CHECK_INTERVAL_SECONDS: float = 60.0

    # Circuit breaker around database reads
    DB_CIRCUIT_FAILURE_THRESHOLD: int = 5
    DB_CIRCUIT_RESET_TIMEOUT_SECONDS: float = 30.0
    DB_CIRCUIT_SUCCESS_THRESHOLD: int = 2

    # Cache TTLs (0 means never expire)
    STATUS_CACHE_TTL_SECONDS: float = 30.0
    SETTINGS_CACHE_TTL_SECONDS: float = 600.0
    RESULTS_CACHE_TTL_SECONDS: float = 5.0
    CACHE_MAX_ENTRIES: int = 100
    CACHE_SWEEP_INTERVAL_SECONDS: float = 300.0

    @field_validator('ELECTION_TIMEZONE')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA timezone names at startup."""
        ZoneInfo(v)
        return v

    @property
    def election_tz(self) -> ZoneInfo:
        return ZoneInfo(self.ELECTION_TIMEZONE)

    def get_database_url(self) -> str:
        """
        Get database URL from either DATABASE_URL or individual components.
        Priority: DATABASE_URL > individual components > default (dev only)
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if all([self.POSTGRES_USER, self.POSTGRES_PASSWORD,
                self.POSTGRES_HOST, self.POSTGRES_DB]):
            port = self.POSTGRES_PORT or "5432"
            return (
                f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{port}/{self.POSTGRES_DB}"
            )

        # Development fallback only
        if self.ENVIRONMENT == "development":
            return "sqlite:///./ballotguard.db"

        raise ValueError(
            "Database configuration missing. Provide either DATABASE_URL or "
            "all of: POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_HOST, POSTGRES_DB"
        )

    def validate_production_config(self) -> None:
        """Validate that production-critical settings are properly configured."""
        if self.ENVIRONMENT != "production":
            return

        issues = []

        if self.SECRET_KEY == "your-secret-key-change-in-production":
            issues.append("SECRET_KEY must be changed from default value")

        if self.ADMIN_PASSWORD == "adminpass":
            issues.append("ADMIN_PASSWORD must be changed from default value")

        if self.CORS_ORIGINS == ["*"]:
            issues.append("CORS_ORIGINS should be restricted to specific domains")

        if self.DB_QUERY_TIMEOUT_SECONDS <= 0 or self.DB_WRITE_TIMEOUT_SECONDS <= 0:
            issues.append("Storage timeouts must be positive")

        if issues:
            raise ValueError(
                "Production configuration errors:\n" +
                "\n".join(f"  - {issue}" for issue in issues)
            )


settings = Settings()

# Validate production configuration on startup
if os.getenv("ENVIRONMENT") == "production":
    settings.validate_production_config()
