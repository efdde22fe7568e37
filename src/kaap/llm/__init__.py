"""LLM client layer.

Model catalog, id normalization, provider resolution and LiteLLM-backed
provider clients.
"""

from .client import LiteLLMClient, ProviderClient
from .errors import (
    ChatError,
    CredentialError,
    EmptyModelListError,
    EmptySubmissionError,
    ErrorInfo,
    ModelUnavailableError,
    TurnFailedError,
    TurnTimeoutError,
    classify_error,
)
from .google_catalog import GoogleModelCatalog
from .models import BUILTIN_MODELS, DEFAULT_MODEL, ModelDescriptor, Provider
from .normalizer import normalize_model_id, normalize_stored_model_id
from .registry import ModelRegistry
from .resolver import ProviderResolver, ResolvedModel, resolve_provider
from .schemas import (
    ChatMessage,
    GenerationRequest,
    LLMResponse,
    ProviderCredentials,
    StreamDelta,
    UsageInfo,
)

__all__ = [
    # Client
    "LiteLLMClient",
    "ProviderClient",
    # Resolver
    "ProviderResolver",
    "ResolvedModel",
    "resolve_provider",
    "GoogleModelCatalog",
    # Registry
    "ModelRegistry",
    # Models
    "ModelDescriptor",
    "Provider",
    "BUILTIN_MODELS",
    "DEFAULT_MODEL",
    # Normalizer
    "normalize_model_id",
    "normalize_stored_model_id",
    # Errors
    "ChatError",
    "CredentialError",
    "ModelUnavailableError",
    "TurnFailedError",
    "TurnTimeoutError",
    "EmptyModelListError",
    "EmptySubmissionError",
    "ErrorInfo",
    "classify_error",
    # Schemas
    "ChatMessage",
    "GenerationRequest",
    "LLMResponse",
    "ProviderCredentials",
    "StreamDelta",
    "UsageInfo",
]
