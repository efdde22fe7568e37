"""Per-chat cost analytics and cost-saving suggestions."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from pydantic import BaseModel, Field

from kaap.chat.state import ChatSession, ModelProfile
from kaap.llm.registry import ModelRegistry

from .tracker import compute_cost

MAX_SUGGESTIONS = 3
DOMINANT_MODEL_COST_USD = Decimal("2")
HIGH_TEMPERATURE = 0.8


class ChatModelUsage(BaseModel):
    """Usage of one model within one chat."""

    model_id: str
    tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    messages_count: int = 0
    cost_usd: Decimal = Decimal("0")


class ChatAnalytics(BaseModel):
    """Token and cost totals for one chat."""

    chat_id: str
    chat_name: str
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: Decimal = Decimal("0")
    per_model: list[ChatModelUsage] = Field(default_factory=list)


def _chat_analytics(chat: ChatSession, registry: ModelRegistry) -> ChatAnalytics:
    analytics = ChatAnalytics(chat_id=chat.id, chat_name=chat.name)
    usage: dict[str, ChatModelUsage] = {}

    for message in chat.messages:
        meta = message.metadata
        if meta is None:
            continue
        input_tokens = meta.input_tokens or 0
        output_tokens = meta.output_tokens or 0
        total_tokens = (
            meta.total_tokens if meta.total_tokens is not None else input_tokens + output_tokens
        )
        if not (input_tokens or output_tokens or total_tokens):
            continue

        model_id = meta.model or ""
        cost = compute_cost(registry, model_id, input_tokens, output_tokens)

        analytics.input_tokens += input_tokens
        analytics.output_tokens += output_tokens
        analytics.total_tokens += total_tokens
        analytics.cost_usd += cost

        entry = usage.setdefault(model_id, ChatModelUsage(model_id=model_id))
        entry.tokens += total_tokens
        entry.input_tokens += input_tokens
        entry.output_tokens += output_tokens
        entry.cost_usd += cost
        entry.messages_count += 1

    analytics.per_model = sorted(usage.values(), key=lambda u: u.cost_usd, reverse=True)
    return analytics


def compute_chat_analytics(
    chats: Sequence[ChatSession],
    registry: ModelRegistry,
) -> list[ChatAnalytics]:
    """Per-chat usage, most expensive chat first.

    Args:
        chats: Chats whose assistant messages carry usage metadata
        registry: Model registry used for pricing

    Returns:
        One analytics entry per chat, with a per-model breakdown sorted
        by cost
    """
    results = [_chat_analytics(chat, registry) for chat in chats]
    return sorted(results, key=lambda a: a.cost_usd, reverse=True)


def suggest_cost_optimizations(
    analytics: ChatAnalytics,
    registry: ModelRegistry,
    profile: ModelProfile,
) -> list[str]:
    """Up to three suggestions for lowering the cost of a chat.

    Args:
        analytics: Analytics of the chat
        registry: Model registry (candidates for cheaper substitutes)
        profile: Active model profile

    Returns:
        Suggestion messages
    """
    suggestions: list[str] = []

    dominant = analytics.per_model[0] if analytics.per_model else None
    if dominant is not None and dominant.cost_usd > DOMINANT_MODEL_COST_USD:
        current = registry.get(dominant.model_id)
        if current is not None:
            alternatives = [
                m
                for m in registry.get_all()
                if m.provider == current.provider and m.id != current.id
            ]
            if alternatives:
                cheaper = min(
                    alternatives,
                    key=lambda m: m.input_price_per_million + m.output_price_per_million,
                )
                suggestions.append(
                    f"Consider {cheaper.display_name} as a cheaper substitute for "
                    f"{current.display_name}."
                )

    if profile.temperature is not None and profile.temperature > HIGH_TEMPERATURE:
        suggestions.append("Lower the temperature for steadier and cheaper answers.")

    if not profile.fallbacks:
        suggestions.append("Add fallback models to the profile to reduce errors and cost.")

    return suggestions[:MAX_SUGGESTIONS]
