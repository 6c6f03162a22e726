"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations: bool = True

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    api_title: str = "SupportDesk API"
    api_version: str = "0.1.0"
    api_description: str = "Support ticket backend with live ticket rooms"

    # Token signing - access and refresh tokens use distinct secrets
    AT_SECRET: str = ""
    RT_SECRET: str = ""
    SESSION_SECRET: str = ""  # Signs one-time (magic link) tokens
    access_token_ttl_minutes: int = 15
    refresh_token_ttl_days: int = 7
    magic_link_ttl_minutes: int = 10

    # Cookies
    access_cookie_name: str = "access_token"
    refresh_cookie_name: str = "refresh_token"
    cookie_domain: str | None = None
    cookie_secure: bool = True

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_CALLBACK_URL: str = "http://localhost:3000/auth/google/callback"

    # Outbound mail (SendGrid)
    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = "support@localhost"

    # Public URLs
    app_url: str = "http://localhost:3000"
    frontend_url: str = "http://localhost:3001"
    allowed_origins: str = "http://localhost:3001"  # Comma-separated

    # Realtime
    realtime_join_requires_access: bool = True

    @property
    def cors_origins(self) -> list[str]:
        """Get list of allowed CORS origins."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "supportdesk-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start without a database or signing secrets.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")

        for name in ("AT_SECRET", "RT_SECRET", "SESSION_SECRET"):
            if not getattr(self, name):
                errors.append(f"{name} is required but empty or missing")

        if self.AT_SECRET and self.AT_SECRET == self.RT_SECRET:
            errors.append("AT_SECRET and RT_SECRET must be different")

        if min(
            self.access_token_ttl_minutes,
            self.refresh_token_ttl_days,
            self.magic_link_ttl_minutes,
        ) <= 0:
            errors.append("Token lifetimes must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
