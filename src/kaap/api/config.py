"""Application configuration settings.

Provides settings for the API, provider credentials, caching and chat
turn behavior.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """Process-wide provider credentials and endpoints.

    Keys here are fallbacks; keys sent by the caller take precedence.
    """

    openai_api_key: str | None = Field(
        default=None,
        validation_alias="OPENAI_API_KEY",
        description="OpenAI API key",
    )
    google_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_API_KEY", "GOOGLE_AI_STUDIO_API_KEY"),
        description="Google AI Studio API key",
    )
    anthropic_api_key: str | None = Field(
        default=None,
        validation_alias="ANTHROPIC_API_KEY",
        description="Anthropic API key",
    )
    deepseek_api_key: str | None = Field(
        default=None,
        validation_alias="DEEPSEEK_API_KEY",
        description="DeepSeek API key",
    )
    deepseek_base_url: str = Field(
        default="https://api.deepseek.com",
        validation_alias="DEEPSEEK_BASE_URL",
        description="OpenAI-compatible DeepSeek endpoint",
    )
    google_models_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        validation_alias="GOOGLE_MODELS_URL",
        description="Google list-models endpoint",
    )
    request_timeout: float = Field(
        default=60.0,
        validation_alias="LLM_REQUEST_TIMEOUT",
        description="Per-call provider timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


class CacheSettings(BaseSettings):
    """Cache and key-value store settings."""

    backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Backend for the model catalog cache and usage store",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(
        default=20,
        description="Maximum number of Redis connections",
    )
    key_prefix: str = Field(
        default="kaap:",
        description="Namespace prepended to every Redis key",
    )

    # TTL settings (in seconds)
    catalog_ttl: int = Field(default=300, description="Google model list TTL")

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        extra="ignore",
    )


class ChatSettings(BaseSettings):
    """Chat turn settings."""

    default_model: str = Field(
        default="claude-sonnet-4-6",
        description="Model used when the request names none",
    )
    turn_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Wall-clock ceiling for one turn",
    )
    audit_log_limit: int = Field(
        default=500,
        ge=1,
        description="Number of audit entries kept",
    )

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        env_file=".env",
        extra="ignore",
    )


class APISettings(BaseSettings):
    """General API settings."""

    title: str = Field(
        default="Kaap Chat API",
        description="API title",
    )
    description: str = Field(
        default="Multi-provider LLM chat gateway",
        description="API description",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    api_prefix: str = Field(default="/api", description="API route prefix")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_provider_settings() -> ProviderSettings:
    """Get cached provider settings."""
    return ProviderSettings()


@lru_cache
def get_cache_settings() -> CacheSettings:
    """Get cached cache settings."""
    return CacheSettings()


@lru_cache
def get_chat_settings() -> ChatSettings:
    """Get cached chat settings."""
    return ChatSettings()


@lru_cache
def get_api_settings() -> APISettings:
    """Get cached API settings."""
    return APISettings()
