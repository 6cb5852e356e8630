"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # ==========================================================================
    # Environment
    # ==========================================================================

    app_name: str = "warden"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_prefix: str = "/api/v1"
    cors_origins: str = "*"

    # Extra routes that skip bearer authentication (comma separated, prefix-less)
    public_paths: str = ""

    # Upper bound for any single outbound call (database, cache, email)
    request_timeout_seconds: float = 10.0

    # ==========================================================================
    # Database
    # ==========================================================================

    # Empty means the in-memory repositories are used
    database_url: str = ""
    database_pool_size: int = 10

    # ==========================================================================
    # Cache
    # ==========================================================================

    redis_url: str = ""

    # ==========================================================================
    # Authentication
    # ==========================================================================

    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30
    jwt_refresh_token_expire_days: int = 7
    jwt_bot_token_expire_hours: int = 24

    password_hash_iterations: int = 100_000
    require_verified_email: bool = True
    verification_code_ttl_seconds: int = 300

    # Basic credentials accepted by the bot token endpoint
    bot_auth_username: str = ""
    bot_auth_password: str = ""

    # ==========================================================================
    # Email
    # ==========================================================================

    # "log", "brevo" or "ses"
    email_provider: str = "log"

    brevo_api_key: str = ""
    brevo_sender_email: str = "noreply@example.com"
    brevo_sender_name: str = "Warden"

    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_ses_from_email: str = ""

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("jwt_algorithm")
    @classmethod
    def _hmac_only(cls, value: str) -> str:
        value = value.upper()
        if value not in HMAC_ALGORITHMS:
            raise ValueError(f"jwt_algorithm must be one of {HMAC_ALGORITHMS}")
        return value

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def public_paths_list(self) -> list[str]:
        return [p.strip() for p in self.public_paths.split(",") if p.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def use_aws(self) -> bool:
        """Whether AWS services should be used."""
        return bool(self.aws_access_key_id and self.aws_secret_access_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
