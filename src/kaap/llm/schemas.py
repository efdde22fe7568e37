"""LLM request/response schemas.

Type-safe Pydantic models for provider interactions.
"""

from typing import Literal

from pydantic import BaseModel, Field

from .models import Provider


class ChatMessage(BaseModel):
    """Individual chat message."""

    role: Literal["system", "user", "assistant"]
    content: str


class ProviderCredentials(BaseModel):
    """Caller-supplied provider API keys.

    Keys are request-scoped and take precedence over environment keys.
    """

    openai: str | None = None
    google: str | None = None
    anthropic: str | None = None
    deepseek: str | None = None

    def for_provider(self, provider: Provider) -> str | None:
        """Get the caller key for a provider, treating blank as missing."""
        value: str | None = getattr(self, provider.value)
        if value and value.strip():
            return value.strip()
        return None


class GenerationRequest(BaseModel):
    """Provider-agnostic completion request."""

    model: str
    messages: list[ChatMessage]
    system: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = None


class UsageInfo(BaseModel):
    """Token usage information."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class LLMResponse(BaseModel):
    """Full (non-streaming) completion response."""

    content: str
    usage: UsageInfo
    model: str
    finish_reason: str | None = None


class StreamDelta(BaseModel):
    """One piece of a streamed completion.

    Text chunks carry ``text``; the provider's final chunk may carry
    ``usage`` instead.
    """

    text: str = ""
    usage: UsageInfo | None = None
