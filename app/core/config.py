"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    See _build_llm_settings() for rationale about the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_store_settings() -> "StoreSettings":
    return StoreSettings()  # type: ignore[call-arg]


def _build_github_settings() -> "GitHubSettings":
    return GitHubSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """LLM provider configuration.

    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        "openai",
        description="LLM provider name (e.g., openai)",
    )
    model: str = Field(
        "gpt-4o-mini",
        description="Model name (e.g., gpt-4o, gpt-4o-mini)",
    )
    api_key: str | None = Field(
        None,
        description="API key for cloud providers (required for OpenAI)",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint for OpenAI-compatible servers",
    )
    timeout_seconds: float = Field(
        45.0,
        description="Request timeout in seconds",
    )
    temperature: float = Field(
        0.8,
        description="Sampling temperature used for README summaries",
        ge=0.0,
        le=2.0,
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    summarizer_auth_mode: str = Field(
        "strict",
        description="Credential mode for the summarizer route: 'strict' or 'public'",
        pattern="^(strict|public)$",
    )
    admission_timeout_seconds: float = Field(
        5.0,
        description="Deadline for a single admission step (validation or quota check)",
        gt=0,
    )
    admin_auth_required: bool = Field(
        True,
        description="Whether key management endpoints require an admin key",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of admin keys for key management endpoints",
    )
    key_prefix_dev: str = Field(
        "rs-dev",
        description="Prefix for generated development keys",
    )
    key_prefix_prod: str = Field(
        "rs-prod",
        description="Prefix for generated production keys",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers when a quota is exhausted",
    )
    max_readme_chars: int = Field(
        30000,
        description="Maximum README length (characters) sent to the LLM",
        ge=1,
    )
    summary_cache_ttl_seconds: int = Field(
        3600,
        description="TTL for cached README summaries",
        ge=1,
    )
    summary_cache_max_entries: int = Field(
        1024,
        description="Maximum number of cached README summaries",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """API key store configuration."""

    backend: str = Field(
        "memory",
        description="Key store backend: 'memory' or 'sql'",
        pattern="^(memory|sql)$",
    )
    database_url: str = Field(
        "sqlite:///./api_keys.db",
        description="SQLAlchemy database URL used by the 'sql' backend",
    )
    increment_strategy: str = Field(
        "atomic",
        description="Usage increment strategy: 'atomic' or 'optimistic'",
        pattern="^(atomic|optimistic)$",
    )
    connect_timeout_seconds: float = Field(
        5.0,
        description="Database connect/busy timeout in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class GitHubSettings(BaseSettings):
    """GitHub access configuration."""

    token: str | None = Field(
        None,
        description="Optional GitHub token to raise API rate limits",
    )
    api_base_url: str = Field(
        "https://api.github.com",
        description="GitHub REST API base URL",
    )
    raw_base_url: str = Field(
        "https://raw.githubusercontent.com",
        description="Base URL for raw file downloads",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Timeout for GitHub requests in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="GITHUB_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log output: 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )
    redact_fields: str | None = Field(
        None,
        description="Extra comma-separated field names to redact from log records",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    github: GitHubSettings = Field(default_factory=_build_github_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
