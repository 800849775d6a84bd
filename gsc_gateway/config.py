"""
Application Configuration - Pydantic Settings for type-safe config.

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

    # Key-value store (token cache, rate limit windows, response cache)
    redis_url: str = ""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "GSC Insights Gateway"
    api_version: str = "0.1.0"
    api_description: str = "Search Console analytics and AI insights gateway"

    # Caller authentication (JWT issued by the login service)
    JWT_SECRET: str = ""
    jwt_algorithm: str = "HS256"

    # Google OAuth (Search Console access)
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    frontend_url: str = "https://analytics.k-o.pro"
    cors_origins: str = "https://analytics.k-o.pro,http://localhost:3000"

    @property
    def oauth_redirect_uri(self) -> str:
        """Redirect URI registered with Google for the consent flow."""
        return f"{self.frontend_url.rstrip('/')}/oauth-callback"

    @property
    def allowed_origins(self) -> list[str]:
        """Get list of allowed CORS origins."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # Upstream HTTP
    upstream_timeout_seconds: float = 15.0
    oauth_timeout_seconds: float = 10.0

    # AI provider (OpenAI chat completions)
    OPENAI_API_KEY: str = ""
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    openai_model: str = "gpt-4"
    ai_timeout_seconds: float = 30.0
    ai_max_prompt_rows: int = 100

    # Rate limiting (per user, per operation)
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60

    # Response cache TTLs
    cache_ttl_sites_seconds: int = 3600
    cache_ttl_analytics_seconds: int = 300

    # Credits
    free_credits_per_account: int = 5
    top_pages_free_limit: int = 10
    top_pages_max_limit: int = 50

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "gsc-insights-gateway"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.redis_url:
            errors.append("REDIS_URL is required but empty or missing")

        if not self.JWT_SECRET:
            errors.append("JWT_SECRET is required but empty or missing")

        if self.rate_limit_requests <= 0 or self.rate_limit_window_seconds <= 0:
            errors.append("Rate limit requests and window must be positive")

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
