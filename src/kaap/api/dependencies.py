"""FastAPI dependencies for dependency injection.

The registry, catalog cache and orchestrator are process-wide singletons;
credentials and messages stay request-scoped.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from kaap.cache import InMemoryModelCatalogCache, ModelCatalogCache, RedisModelCatalogCache, get_redis
from kaap.llm import GoogleModelCatalog, ModelRegistry, ProviderResolver
from kaap.prompts import SystemInstructionBuilder
from kaap.services import TurnOrchestrator

from .config import get_cache_settings, get_chat_settings, get_provider_settings


@lru_cache(maxsize=1)
def get_registry() -> ModelRegistry:
    """Model registry dependency."""
    return ModelRegistry()


@lru_cache(maxsize=1)
def get_catalog_cache() -> ModelCatalogCache:
    """Google model-list cache for the configured backend."""
    settings = get_cache_settings()
    if settings.backend == "redis":
        return RedisModelCatalogCache(get_redis())
    return InMemoryModelCatalogCache()


@lru_cache(maxsize=1)
def get_instruction_builder() -> SystemInstructionBuilder:
    return SystemInstructionBuilder()


@lru_cache(maxsize=1)
def get_orchestrator() -> TurnOrchestrator:
    """Turn orchestrator dependency.

    Returns:
        TurnOrchestrator wired to the configured providers and cache
    """
    provider_settings = get_provider_settings()
    chat_settings = get_chat_settings()

    google_catalog = GoogleModelCatalog(
        cache=get_catalog_cache(),
        models_url=provider_settings.google_models_url,
        ttl=get_cache_settings().catalog_ttl,
    )
    resolver = ProviderResolver(
        registry=get_registry(),
        settings=provider_settings,
        google_catalog=google_catalog,
    )
    return TurnOrchestrator(
        resolver=resolver,
        builder=get_instruction_builder(),
        default_model=chat_settings.default_model,
        turn_timeout=chat_settings.turn_timeout_seconds,
    )


# Type aliases for cleaner route signatures
Registry = Annotated[ModelRegistry, Depends(get_registry)]
Orchestrator = Annotated[TurnOrchestrator, Depends(get_orchestrator)]
