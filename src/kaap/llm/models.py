"""LLM model definitions.

Defines the ModelDescriptor dataclass and the built-in model catalog.
Prices are USD per one million tokens.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class Provider(str, Enum):
    """Hosted LLM providers the gateway can route to."""

    OPENAI = "openai"
    GOOGLE = "google"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"


@dataclass(frozen=True)
class ModelDescriptor:
    """Model configuration with pricing.

    Note: Built-in descriptors are immutable. User-added models are
    managed through ModelRegistry.
    """

    id: str  # Model id sent to the provider
    provider: Provider
    input_price_per_million: Decimal  # USD per 1M input tokens
    output_price_per_million: Decimal  # USD per 1M output tokens
    display_name: str
    description: str = ""
    max_output_tokens: int | None = None


def _model(
    model_id: str,
    provider: Provider,
    input_price: str,
    output_price: str,
    max_output_tokens: int,
    display_name: str,
    description: str,
) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        provider=provider,
        input_price_per_million=Decimal(input_price),
        output_price_per_million=Decimal(output_price),
        max_output_tokens=max_output_tokens,
        display_name=display_name,
        description=description,
    )


BUILTIN_MODELS: tuple[ModelDescriptor, ...] = (
    # OpenAI
    _model(
        "gpt-4o", Provider.OPENAI, "2.50", "10.00", 16384,
        "GPT-4o", "Fastest and most versatile OpenAI model.",
    ),
    _model(
        "gpt-4-turbo", Provider.OPENAI, "10.00", "30.00", 4096,
        "GPT-4 Turbo", "Previous OpenAI flagship with broad knowledge.",
    ),
    _model(
        "o1-preview", Provider.OPENAI, "15.00", "60.00", 32768,
        "OpenAI o1 Preview", "Reasoning model for the hardest tasks.",
    ),
    _model(
        "o1-mini", Provider.OPENAI, "3.00", "12.00", 65536,
        "OpenAI o1 Mini", "Faster and cheaper reasoning model.",
    ),
    # Google
    _model(
        "gemini-pro-latest", Provider.GOOGLE, "3.50", "10.50", 8192,
        "Gemini Pro (latest)", "Stable Pro model with broad compatibility.",
    ),
    _model(
        "gemini-flash-latest", Provider.GOOGLE, "0.35", "1.05", 8192,
        "Gemini Flash (latest)", "Fast and cheap, good for quick answers.",
    ),
    # Anthropic
    _model(
        "claude-3-haiku-20240307", Provider.ANTHROPIC, "0.25", "1.25", 4096,
        "Claude 3 Haiku (Legacy)", "Cheapest and fastest. Works with older API keys.",
    ),
    _model(
        "claude-3-5-sonnet-20241022", Provider.ANTHROPIC, "3.00", "15.00", 8192,
        "Claude 3.5 Sonnet (New)", "Updated Sonnet with a good balance of quality and price.",
    ),
    _model(
        "claude-3-5-haiku-20241022", Provider.ANTHROPIC, "1.00", "5.00", 8192,
        "Claude 3.5 Haiku", "Small Anthropic model.",
    ),
    _model(
        "claude-3-opus-20240229", Provider.ANTHROPIC, "15.00", "75.00", 4096,
        "Claude 3 Opus", "Powerful model for creative and complex tasks.",
    ),
    _model(
        "claude-opus-4-6", Provider.ANTHROPIC, "15.00", "75.00", 4096,
        "Claude Opus 4.6", "Premium mode: deep analysis and long-term strategy.",
    ),
    _model(
        "claude-sonnet-4-6", Provider.ANTHROPIC, "8.00", "24.00", 8192,
        "Claude Sonnet 4.6", "Balanced Anthropic model, fast and accurate.",
    ),
    # DeepSeek (OpenAI-compatible endpoint)
    _model(
        "deepseek-chat", Provider.DEEPSEEK, "0.50", "0.80", 8192,
        "DeepSeek Chat", "Fast, cheap conversational model.",
    ),
    _model(
        "deepseek-reasoner", Provider.DEEPSEEK, "2.00", "3.00", 8192,
        "DeepSeek Reasoner", "Reasoning model for more complex tasks.",
    ),
)

# Default model (safe choice)
DEFAULT_MODEL = "claude-sonnet-4-6"
