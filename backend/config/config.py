"""
Application configuration with environment-based settings.
All configuration is explicit, validated, and logged at startup.
"""

from functools import lru_cache
from typing import Literal
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _redact_url_password(url: str | None) -> str | None:
    """Mask the password component of a connection URL."""
    if not url:
        return url
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***REDACTED***@")
    return urlunsplit(parts._replace(netloc=netloc))


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development but require
    explicit configuration in production environments.
    """

    model_config = SettingsConfigDict(
        env_file="../.env",  # Load from project root (relative to backend/)
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = Field(default="Zinara", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./zinara.db",
        description="SQLAlchemy database URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Cache (optional - the app runs without it)
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    cache_default_ttl_seconds: int = Field(default=300, ge=1, description="Default cache TTL")

    # LLM Provider (any OpenAI-compatible endpoint, Gemini by default)
    llm_api_key: str = Field(default="", description="Generative AI API key")
    llm_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        description="OpenAI-compatible API base URL"
    )
    llm_model: str = Field(default="gemini-2.0-flash", description="LLM model to use")
    llm_second_opinion_model: str = Field(
        default="gemini-1.5-pro",
        description="LLM model used for second opinion analysis"
    )
    llm_max_tokens: int = Field(default=2048, description="Max tokens per response")
    llm_temperature: float = Field(default=0.7, description="Model temperature")
    llm_top_p: float = Field(default=0.9, description="Nucleus sampling")
    llm_timeout_seconds: float = Field(default=60.0, description="LLM request timeout")

    # Auth
    jwt_secret_key: str = Field(
        default="zinara-development-secret-change-me",
        description="Secret used to sign access tokens"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(
        default=30 * 24 * 60,
        description="Access token lifetime (30 days)"
    )

    # ClinicalTrials.gov
    clinical_trials_base_url: str = Field(
        default="https://clinicaltrials.gov",
        description="ClinicalTrials.gov base URL"
    )
    clinical_trials_page_size: int = Field(default=20, description="Studies per search")
    clinical_trials_timeout_seconds: float = Field(default=15.0, description="Search timeout")

    # Rate Limiting
    second_opinion_rate_limit: int = Field(default=5, description="Second opinions per window")
    second_opinion_rate_window_seconds: int = Field(default=3600, description="Rate limit window")

    # Onboarding
    seed_questions_on_startup: bool = Field(
        default=True,
        description="Upsert the onboarding question catalog at startup"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key)

    def get_safe_config_dict(self) -> dict:
        """Return configuration dict with secrets redacted for logging."""
        config = self.model_dump()
        # Redact sensitive values
        for key in ("llm_api_key", "jwt_secret_key"):
            if config.get(key):
                config[key] = "***REDACTED***"
        config["database_url"] = _redact_url_password(config.get("database_url"))
        config["redis_url"] = _redact_url_password(config.get("redis_url"))
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for the application lifetime.
    Use dependency injection in FastAPI routes for testability.
    """
    return Settings()
