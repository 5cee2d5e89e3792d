"""
Application settings using Pydantic Settings.

Loads configuration from environment variables and .env file.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from authguard.app.services.rate_limit import RateLimitConfig


class Settings(BaseSettings):
    """Application settings with validation and defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="none",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="", description="Optional log file path")
    log_json: bool = Field(default=True, description="Emit JSON log lines")

    # Security
    cors_origins: str = Field(
        default="http://localhost:5173",
        description="Comma-separated CORS origins",
    )
    jwt_secret: str = Field(
        default="INSECURE_DEFAULT_CHANGE_ME",
        min_length=16,
        description="HS256 signing secret for access tokens",
    )
    jwt_access_ttl_seconds: int = Field(
        default=900, ge=60, description="Access token lifetime in seconds"
    )
    admin_api_key: str = Field(
        default="", description="X-Admin-Key value for admin endpoints (empty disables them)"
    )

    # Rate limiting
    rate_limit_max_attempts: int = Field(
        default=5, gt=0, description="Attempts allowed per sliding window"
    )
    rate_limit_window_ms: int = Field(
        default=60_000, gt=0, description="Sliding window length in milliseconds"
    )
    rate_limit_block_duration_ms: int = Field(
        default=30_000, gt=0, description="Lockout length for the first violation"
    )
    rate_limit_backoff_multiplier: float = Field(
        default=2.0, ge=1, description="Lockout multiplier per consecutive violation"
    )
    rate_limit_reset_period_ms: int | None = Field(
        default=None, gt=0, description="Quiet time before escalation resets (default 3x block)"
    )
    rate_limit_max_block_duration_ms: int | None = Field(
        default=None, gt=0, description="Optional lockout ceiling"
    )
    rate_limit_sweep_interval_ms: int | None = Field(
        default=300_000, gt=0, description="Idle record eviction interval, 'none' disables"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and self.jwt_secret != "INSECURE_DEFAULT_CHANGE_ME"

    def rate_limit_config(self) -> RateLimitConfig:
        """Build the limiter policy from the RATE_LIMIT_* settings."""
        return RateLimitConfig(
            max_attempts=self.rate_limit_max_attempts,
            window_ms=self.rate_limit_window_ms,
            block_duration_ms=self.rate_limit_block_duration_ms,
            backoff_multiplier=self.rate_limit_backoff_multiplier,
            reset_period_ms=self.rate_limit_reset_period_ms,
            max_block_duration_ms=self.rate_limit_max_block_duration_ms,
            sweep_interval_ms=self.rate_limit_sweep_interval_ms,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
