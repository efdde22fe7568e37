"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest

from kaap.llm import (
    CredentialError,
    GenerationRequest,
    LLMResponse,
    ModelRegistry,
    Provider,
    ResolvedModel,
    StreamDelta,
    UsageInfo,
    resolve_provider,
)
from kaap.prompts import SystemInstructionBuilder


class FakeProviderClient:
    """Provider client returning canned output and recording requests."""

    def __init__(
        self,
        provider: Provider = Provider.ANTHROPIC,
        text: str = "Hello there",
        chunks: list[str] | None = None,
        usage: UsageInfo | None = None,
        error: Exception | None = None,
        stream_error: Exception | None = None,
        mid_stream_error: Exception | None = None,
        chunk_delay: float = 0.0,
    ) -> None:
        self.provider = provider
        self.text = text
        self.chunks = chunks if chunks is not None else [text]
        self.usage = usage or UsageInfo(input_tokens=10, output_tokens=5, total_tokens=15)
        self.error = error
        self.stream_error = stream_error
        self.mid_stream_error = mid_stream_error
        self.chunk_delay = chunk_delay
        self.requests: list[GenerationRequest] = []
        self.closed = False

    async def complete(self, request: GenerationRequest) -> LLMResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.text, usage=self.usage, model=request.model, finish_reason="stop")

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamDelta]:
        self.requests.append(request)
        try:
            if self.stream_error is not None:
                raise self.stream_error
            for index, chunk in enumerate(self.chunks):
                if index > 0 and self.chunk_delay:
                    await asyncio.sleep(self.chunk_delay)
                yield StreamDelta(text=chunk)
                if self.mid_stream_error is not None:
                    raise self.mid_stream_error
            yield StreamDelta(usage=self.usage)
        finally:
            self.closed = True


class FakeResolver:
    """Resolver mapping model ids to fake clients or resolution errors."""

    def __init__(
        self,
        outcomes: dict[str, FakeProviderClient | Exception],
        registry: ModelRegistry | None = None,
        delay: float = 0.0,
    ) -> None:
        self.outcomes = outcomes
        self.registry = registry or ModelRegistry()
        self.delay = delay
        self.attempted: list[str] = []

    async def resolve(self, model_id: str, credentials: Any = None) -> ResolvedModel:
        self.attempted.append(model_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.get(model_id)
        if outcome is None:
            raise CredentialError("Missing ANTHROPIC_API_KEY in the .env file")
        if isinstance(outcome, Exception):
            raise outcome
        return ResolvedModel(
            model_id=model_id,
            provider=resolve_provider(model_id, self.registry),
            client=outcome,
            descriptor=self.registry.get(model_id),
        )


@pytest.fixture
def registry() -> ModelRegistry:
    """Registry with the built-in models only."""
    return ModelRegistry()


@pytest.fixture
def builder() -> SystemInstructionBuilder:
    """Instruction builder backed by the packaged prompts."""
    return SystemInstructionBuilder()


@pytest.fixture
def fake_client_factory() -> type[FakeProviderClient]:
    return FakeProviderClient


@pytest.fixture
def fake_resolver_factory() -> type[FakeResolver]:
    return FakeResolver
