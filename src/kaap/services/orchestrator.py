"""Turn orchestration.

Drives provider calls for one chat turn:

- ``test``: one non-streaming call with a trivial prompt
- ``chat``: streaming call with ordered fallback across candidate models
- ``multi``: concurrent calls to several models, then one merge call

Fallback only happens before the first streamed token reaches the caller;
once output has been emitted the turn is never retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Iterable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from kaap.llm.errors import (
    ChatError,
    EmptyModelListError,
    TurnFailedError,
    TurnTimeoutError,
)
from kaap.llm.models import DEFAULT_MODEL, Provider
from kaap.llm.normalizer import normalize_model_id
from kaap.llm.resolver import ProviderResolver, ResolvedModel
from kaap.llm.schemas import ChatMessage, GenerationRequest, StreamDelta, UsageInfo
from kaap.prompts.instructions import SystemInstructionBuilder

from .schemas import (
    ChatTurnRequest,
    ConnectionTestRequest,
    ConnectionTestResult,
    InstructionContext,
    ModelResult,
    MultiTurnRequest,
    MultiTurnResult,
    TurnCompletion,
)

logger = structlog.get_logger()

T = TypeVar("T")

GENERIC_FAILURE_MESSAGE = "Failed to generate a response."


async def _next_delta(deltas: AsyncIterator[StreamDelta]) -> StreamDelta:
    return await deltas.__anext__()


async def _close_deltas(deltas: AsyncIterator[StreamDelta]) -> None:
    aclose = getattr(deltas, "aclose", None)
    if aclose is not None:
        await aclose()


def _dedupe(model_ids: Iterable[str]) -> list[str]:
    """Normalize ids, drop empty ones and keep first occurrences in order."""
    seen: set[str] = set()
    result: list[str] = []
    for raw in model_ids:
        model_id = normalize_model_id(raw or "")
        if model_id and model_id not in seen:
            seen.add(model_id)
            result.append(model_id)
    return result


class TurnStream:
    """Established streaming response served by one model.

    The first delta has already been received when the stream is handed
    out. Iterating yields it followed by the rest of the provider stream.
    """

    def __init__(
        self,
        model_id: str,
        provider: Provider,
        first: StreamDelta | None,
        deltas: AsyncIterator[StreamDelta],
        deadline: float,
        timeout_seconds: float,
    ) -> None:
        """Initialize turn stream.

        Args:
            model_id: Model that actually serves the turn
            provider: Provider of that model
            first: First delta received during stream establishment
            deltas: Remaining provider stream
            deadline: Event-loop time by which the turn must finish
            timeout_seconds: Turn ceiling, for error reporting
        """
        self.model_id = model_id
        self.provider = provider
        self._first = first
        self._deltas = deltas
        self._deadline = deadline
        self._timeout_seconds = timeout_seconds
        self._usage = UsageInfo()
        self._done = False

    @property
    def usage(self) -> UsageInfo:
        """Latest usage reported by the provider."""
        return self._usage

    @property
    def done(self) -> bool:
        return self._done

    def completion(self) -> TurnCompletion:
        """Metadata for the stream's completion event."""
        return TurnCompletion(
            model=self.model_id,
            input_tokens=self._usage.input_tokens,
            output_tokens=self._usage.output_tokens,
            total_tokens=self._usage.total_tokens,
        )

    def _track(self, delta: StreamDelta) -> StreamDelta:
        if delta.usage is not None:
            self._usage = delta.usage
        return delta

    async def __aiter__(self) -> AsyncIterator[StreamDelta]:
        """Yield deltas until the provider stream ends.

        Raises:
            TurnTimeoutError: Turn ceiling reached mid-stream
        """
        loop = asyncio.get_running_loop()

        if self._first is not None:
            first, self._first = self._first, None
            yield self._track(first)

        while True:
            remaining = self._deadline - loop.time()
            if remaining <= 0:
                await self.aclose()
                raise TurnTimeoutError(self._timeout_seconds)
            try:
                delta = await asyncio.wait_for(_next_delta(self._deltas), timeout=remaining)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError:
                await self.aclose()
                raise TurnTimeoutError(self._timeout_seconds) from None
            yield self._track(delta)

        self._done = True

    async def aclose(self) -> None:
        """Stop consuming the provider stream (client abort)."""
        await _close_deltas(self._deltas)


@dataclass(frozen=True)
class CandidateOutcome:
    """Result of trying one candidate: either a stream or an error."""

    model_id: str
    stream: TurnStream | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.stream is not None


class TurnOrchestrator:
    """Routes chat turns to providers with fallback and merge support."""

    def __init__(
        self,
        resolver: ProviderResolver,
        builder: SystemInstructionBuilder,
        default_model: str = DEFAULT_MODEL,
        turn_timeout: float = 30.0,
    ) -> None:
        """Initialize orchestrator.

        Args:
            resolver: Provider resolver
            builder: System instruction builder
            default_model: Model used when a request names none
            turn_timeout: Wall-clock ceiling for one turn in seconds
        """
        self.resolver = resolver
        self.builder = builder
        self.default_model = default_model
        self.turn_timeout = turn_timeout

    def primary_model(self, model_id: str | None) -> str:
        """Normalized request model, or the default model."""
        return normalize_model_id(model_id or "") or normalize_model_id(self.default_model)

    def chat_candidates(self, model_id: str | None, fallback_model_ids: Iterable[str]) -> list[str]:
        """Candidate order: primary first, then fallbacks in caller order."""
        return _dedupe([self.primary_model(model_id), *fallback_model_ids])

    def multi_candidates(self, request: MultiTurnRequest) -> tuple[list[str], str | None]:
        """Models to compare and the primary (merge target).

        The primary is the request ``model_id``, or the first requested
        model when none is given, and appears exactly once. If the caller
        did not list it, it is placed first; otherwise request order is
        kept. An empty request yields no candidates and no primary.

        Unlike :meth:`primary_model`, an omitted ``model_id`` does not fall
        back to the configured default model, so the merge always runs on
        a model the caller asked to compare rather than an extra one.
        """
        model_ids = _dedupe(request.model_ids)
        if not model_ids:
            return [], None

        primary = normalize_model_id(request.model_id or "") or model_ids[0]
        if primary not in model_ids:
            model_ids.insert(0, primary)
        return model_ids, primary

    def _instruction(self, model_id: str, context: InstructionContext) -> str:
        return self.builder.build(
            model_id=model_id,
            master_prompt=context.master_prompt,
            model_system_prompt=context.system_prompt_for(model_id),
            memory=context.memory,
            pinned_facts=context.pinned_facts,
            work_mode=context.work_mode,
        )

    async def _bounded(self, operation: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self.turn_timeout)
        except asyncio.TimeoutError:
            logger.warning("turn_timeout", timeout_seconds=self.turn_timeout)
            raise TurnTimeoutError(self.turn_timeout) from None

    # Path A: connectivity test

    async def test(self, request: ConnectionTestRequest) -> ConnectionTestResult:
        """Verify a credential/model pairing with one trivial call.

        Raises:
            ChatError: Resolution or generation failed
        """
        model_id = self.primary_model(request.model_id)

        async def run() -> ConnectionTestResult:
            resolved = await self.resolver.resolve(model_id, request.credentials)
            response = await resolved.client.complete(
                GenerationRequest(
                    model=model_id,
                    messages=[ChatMessage(role="user", content=self.builder.test_prompt())],
                    system=self._instruction(model_id, request),
                    temperature=0.0,
                    max_tokens=resolved.max_output_tokens,
                )
            )
            return ConnectionTestResult(model=model_id, text=response.content)

        try:
            result = await self._bounded(run())
        except ChatError:
            raise
        except Exception as e:
            logger.warning("connection_test_failed", model=model_id, error=str(e))
            raise ChatError("Internal Server Error", status_code=500, details=str(e)) from e

        logger.info("connection_test_succeeded", model=model_id)
        return result

    # Path B: streaming chat with ordered fallback

    async def chat(self, request: ChatTurnRequest) -> TurnStream:
        """Open a stream on the first candidate that can serve the turn.

        Returns:
            Established stream; its ``model_id`` names the serving model

        Raises:
            TurnFailedError: Every candidate failed
            TurnTimeoutError: Turn ceiling reached before a stream opened
        """
        candidates = self.chat_candidates(request.model_id, request.fallback_model_ids)
        deadline = asyncio.get_running_loop().time() + self.turn_timeout

        logger.info("chat_turn_start", candidates=candidates, message_count=len(request.messages))
        return await self._bounded(self._first_serving_candidate(candidates, request, deadline))

    async def _first_serving_candidate(
        self,
        candidates: list[str],
        request: ChatTurnRequest,
        deadline: float,
    ) -> TurnStream:
        last_error: Exception | None = None

        for candidate in candidates:
            outcome = await self._try_candidate(candidate, request, deadline)
            if outcome.stream is not None:
                logger.info(
                    "chat_turn_serving",
                    model=candidate,
                    requested=candidates[0],
                    fallback=candidate != candidates[0],
                )
                return outcome.stream

            last_error = outcome.error
            logger.warning(
                "chat_candidate_failed",
                model=candidate,
                error_type=type(outcome.error).__name__,
                error=str(outcome.error),
            )

        raise self._terminal_error(last_error)

    async def _try_candidate(
        self,
        candidate: str,
        request: ChatTurnRequest,
        deadline: float,
    ) -> CandidateOutcome:
        try:
            resolved = await self.resolver.resolve(candidate, request.credentials)
        except Exception as e:
            return CandidateOutcome(model_id=candidate, error=e)

        generation = GenerationRequest(
            model=candidate,
            messages=request.messages,
            system=self._instruction(candidate, request),
            temperature=request.temperature,
            top_p=request.top_p,
            max_tokens=resolved.max_output_tokens,
        )

        deltas = resolved.client.stream(generation)
        try:
            first: StreamDelta | None = await _next_delta(deltas)
        except StopAsyncIteration:
            first = None
        except Exception as e:
            await _close_deltas(deltas)
            return CandidateOutcome(model_id=candidate, error=e)

        stream = TurnStream(
            model_id=candidate,
            provider=resolved.provider,
            first=first,
            deltas=deltas,
            deadline=deadline,
            timeout_seconds=self.turn_timeout,
        )
        return CandidateOutcome(model_id=candidate, stream=stream)

    @staticmethod
    def _terminal_error(error: Exception | None) -> TurnFailedError:
        """Credential/config errors keep their status; others become 500."""
        if isinstance(error, ChatError):
            return TurnFailedError(error.message, status_code=error.status_code, details=error.details)
        details = str(error) if error is not None else "No candidate models"
        return TurnFailedError(GENERIC_FAILURE_MESSAGE, status_code=500, details=details)

    # Path C: multi-model comparison and merge

    async def multi(self, request: MultiTurnRequest) -> MultiTurnResult:
        """Query several models concurrently and merge their answers.

        Per-model failures and merge failures are reported inline and
        never fail the whole response.

        Raises:
            EmptyModelListError: No models requested
            TurnTimeoutError: Turn ceiling reached
        """
        model_ids, primary = self.multi_candidates(request)
        if not model_ids or primary is None:
            raise EmptyModelListError()

        logger.info("multi_turn_start", models=model_ids, merge_model=primary)

        async def run() -> MultiTurnResult:
            results = list(
                await asyncio.gather(*(self._compare_one(model_id, request) for model_id in model_ids))
            )
            merged_text = await self._merge(primary, results, request)
            return MultiTurnResult(results=results, merged_text=merged_text)

        return await self._bounded(run())

    async def _compare_one(self, model_id: str, request: MultiTurnRequest) -> ModelResult:
        try:
            resolved = await self.resolver.resolve(model_id, request.credentials)
            response = await resolved.client.complete(
                GenerationRequest(
                    model=model_id,
                    messages=request.messages,
                    system=self._instruction(model_id, request),
                    temperature=request.temperature,
                    top_p=request.top_p,
                    max_tokens=resolved.max_output_tokens,
                )
            )
        except Exception as e:
            logger.warning("multi_model_failed", model=model_id, error=str(e))
            return ModelResult(model=model_id, error=str(e) or type(e).__name__)

        return ModelResult(model=model_id, text=response.content, usage=response.usage)

    async def _merge(self, merge_model: str, results: list[ModelResult], request: MultiTurnRequest) -> str:
        try:
            resolved: ResolvedModel = await self.resolver.resolve(merge_model, request.credentials)
            response = await resolved.client.complete(
                GenerationRequest(
                    model=merge_model,
                    messages=[
                        ChatMessage(role="user", content=self.builder.build_merge_prompt(results))
                    ],
                    system=self._instruction(merge_model, request),
                    temperature=request.temperature,
                    top_p=request.top_p,
                    max_tokens=resolved.max_output_tokens,
                )
            )
        except Exception as e:
            logger.warning("multi_merge_failed", model=merge_model, error=str(e))
            return f"Failed to merge the answers: {e}"

        return response.content
