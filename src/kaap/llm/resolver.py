"""Provider resolution.

Maps a model id to its provider and, given credentials, to a callable
provider client.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from kaap.api.config import ProviderSettings

from .client import LiteLLMClient, ProviderClient
from .errors import CredentialError, ModelUnavailableError
from .google_catalog import GoogleModelCatalog
from .models import ModelDescriptor, Provider
from .registry import ModelRegistry
from .schemas import ProviderCredentials

logger = structlog.get_logger()

# Environment variable named in the missing-credential message
CREDENTIAL_ENV_NAMES: dict[Provider, str] = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.GOOGLE: "GOOGLE_API_KEY (or GOOGLE_AI_STUDIO_API_KEY)",
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.DEEPSEEK: "DEEPSEEK_API_KEY",
}

_PREFIX_RULES: tuple[tuple[tuple[str, ...], Provider], ...] = (
    (("gpt", "o1"), Provider.OPENAI),
    (("gemini",), Provider.GOOGLE),
    (("deepseek",), Provider.DEEPSEEK),
)


def resolve_provider(model_id: str, registry: ModelRegistry | None = None) -> Provider:
    """Guess the provider serving a model.

    Registry entries win; unregistered ids fall back to naming
    conventions, then to Anthropic.

    Args:
        model_id: Normalized model id
        registry: Optional registry to consult first

    Returns:
        Provider for the model
    """
    if registry is not None:
        model = registry.get(model_id)
        if model is not None:
            return model.provider

    for prefixes, provider in _PREFIX_RULES:
        if model_id.startswith(prefixes):
            return provider

    return Provider.ANTHROPIC


@dataclass(frozen=True)
class ResolvedModel:
    """A model bound to a ready-to-call provider client."""

    model_id: str
    provider: Provider
    client: ProviderClient
    descriptor: ModelDescriptor | None = None

    @property
    def max_output_tokens(self) -> int | None:
        return self.descriptor.max_output_tokens if self.descriptor else None


class ProviderResolver:
    """Builds provider clients for model ids."""

    def __init__(
        self,
        registry: ModelRegistry,
        settings: ProviderSettings,
        google_catalog: GoogleModelCatalog,
    ) -> None:
        """Initialize provider resolver.

        Args:
            registry: Model registry
            settings: Environment-sourced credentials and endpoints
            google_catalog: Google model availability lookup
        """
        self.registry = registry
        self.settings = settings
        self.google_catalog = google_catalog

    def _env_credential(self, provider: Provider) -> str | None:
        value = {
            Provider.OPENAI: self.settings.openai_api_key,
            Provider.GOOGLE: self.settings.google_api_key,
            Provider.ANTHROPIC: self.settings.anthropic_api_key,
            Provider.DEEPSEEK: self.settings.deepseek_api_key,
        }[provider]
        return value.strip() if value and value.strip() else None

    def credential_for(
        self,
        provider: Provider,
        credentials: ProviderCredentials | None = None,
    ) -> str | None:
        """Caller key if present, else the environment key."""
        if credentials is not None:
            caller_key = credentials.for_provider(provider)
            if caller_key:
                return caller_key
        return self._env_credential(provider)

    async def resolve(
        self,
        model_id: str,
        credentials: ProviderCredentials | None = None,
    ) -> ResolvedModel:
        """Resolve a model id to a provider client.

        Args:
            model_id: Normalized model id
            credentials: Caller-supplied API keys

        Returns:
            Resolved model with its client

        Raises:
            CredentialError: No key for the model's provider
            ModelUnavailableError: Google key cannot see the model
        """
        provider = resolve_provider(model_id, self.registry)
        api_key = self.credential_for(provider, credentials)
        if not api_key:
            raise CredentialError(f"Missing {CREDENTIAL_ENV_NAMES[provider]} in the .env file")

        api_base: str | None = None
        if provider is Provider.GOOGLE:
            available = await self.google_catalog.list_models(api_key)
            # An empty list is ambiguous (listing failed or truly empty): skip the check
            if available and model_id not in available:
                raise ModelUnavailableError(model_id)
        elif provider is Provider.DEEPSEEK:
            api_base = self.settings.deepseek_base_url

        client = LiteLLMClient(
            provider=provider,
            api_key=api_key,
            api_base=api_base,
            timeout=self.settings.request_timeout,
        )

        logger.debug("provider_resolved", model=model_id, provider=provider.value)
        return ResolvedModel(
            model_id=model_id,
            provider=provider,
            client=client,
            descriptor=self.registry.get(model_id),
        )
