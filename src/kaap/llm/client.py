"""LiteLLM provider clients.

One client shape serves every provider; the provider tag selects the
LiteLLM route and endpoint. Calls are never retried here: a failed
candidate is handed back to the orchestrator, which moves on to the
next one.
"""

from collections.abc import AsyncIterator
from typing import Any, Protocol

import litellm
import structlog

from .models import Provider
from .schemas import GenerationRequest, LLMResponse, StreamDelta, UsageInfo

logger = structlog.get_logger()

# LiteLLM route per provider; DeepSeek speaks the OpenAI protocol
_ROUTES: dict[Provider, str] = {
    Provider.OPENAI: "openai",
    Provider.GOOGLE: "gemini",
    Provider.ANTHROPIC: "anthropic",
    Provider.DEEPSEEK: "openai",
}


class ProviderClient(Protocol):
    """Capability shared by every provider variant."""

    provider: Provider

    async def complete(self, request: GenerationRequest) -> LLMResponse:
        """Generate a full completion."""
        ...

    def stream(self, request: GenerationRequest) -> AsyncIterator[StreamDelta]:
        """Stream a completion."""
        ...


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a LiteLLM object or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _usage(raw: Any) -> UsageInfo:
    input_tokens = int(_field(raw, "prompt_tokens") or 0)
    output_tokens = int(_field(raw, "completion_tokens") or 0)
    total_tokens = int(_field(raw, "total_tokens") or input_tokens + output_tokens)
    return UsageInfo(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
    )


class LiteLLMClient:
    """Async LiteLLM client bound to one provider and one API key."""

    def __init__(
        self,
        provider: Provider,
        api_key: str,
        api_base: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize LiteLLM client.

        Args:
            provider: Provider this client talks to
            api_key: Provider API key
            api_base: Optional custom API base URL
            timeout: Per-call timeout in seconds
        """
        self.provider = provider
        self.api_key = api_key
        self.api_base = api_base
        self.timeout = timeout

    def route(self, model_id: str) -> str:
        """LiteLLM model string; the model id itself is passed verbatim."""
        return f"{_ROUTES[self.provider]}/{model_id}"

    def _params(self, request: GenerationRequest, stream: bool) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.extend({"role": m.role, "content": m.content} for m in request.messages)

        params: dict[str, Any] = {
            "model": self.route(request.model),
            "messages": messages,
            "api_key": self.api_key,
        }

        if request.temperature is not None:
            params["temperature"] = request.temperature

        if request.top_p is not None:
            params["top_p"] = request.top_p

        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens

        if self.api_base is not None:
            params["api_base"] = self.api_base

        if self.timeout is not None:
            params["timeout"] = self.timeout

        if stream:
            params["stream"] = True
            params["stream_options"] = {"include_usage": True}

        return params

    async def complete(self, request: GenerationRequest) -> LLMResponse:
        """Call the provider once and return the full response.

        Args:
            request: Completion request

        Returns:
            Completion response with token usage

        Raises:
            Exception: Whatever the provider raised
        """
        logger.info(
            "llm_completion_start",
            provider=self.provider.value,
            model=request.model,
            message_count=len(request.messages),
            temperature=request.temperature,
        )

        response = await litellm.acompletion(**self._params(request, stream=False))

        choice = _field(response, "choices")[0]
        content = _field(_field(choice, "message"), "content") or ""
        finish_reason = _field(choice, "finish_reason")
        usage = _usage(_field(response, "usage"))

        logger.info(
            "llm_completion_success",
            provider=self.provider.value,
            model=request.model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            finish_reason=finish_reason,
        )

        return LLMResponse(
            content=content,
            usage=usage,
            model=request.model,
            finish_reason=finish_reason,
        )

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamDelta]:
        """Stream the provider response.

        Args:
            request: Completion request

        Yields:
            Text deltas, then one usage delta if the provider reports usage
        """
        logger.info(
            "llm_stream_start",
            provider=self.provider.value,
            model=request.model,
            message_count=len(request.messages),
        )

        stream = await litellm.acompletion(**self._params(request, stream=True))

        chunk_count = 0
        async for chunk in stream:
            choices = _field(chunk, "choices") or []
            if choices:
                text = _field(_field(choices[0], "delta"), "content")
                if text:
                    chunk_count += 1
                    yield StreamDelta(text=text)

            raw_usage = _field(chunk, "usage")
            if raw_usage:
                yield StreamDelta(usage=_usage(raw_usage))

        logger.info(
            "llm_stream_success",
            provider=self.provider.value,
            model=request.model,
            chunk_count=chunk_count,
        )
