"""Turn orchestrator tests."""

from __future__ import annotations

import asyncio

import pytest

from kaap.llm import (
    ChatError,
    ChatMessage,
    CredentialError,
    EmptyModelListError,
    ModelUnavailableError,
    TurnFailedError,
    TurnTimeoutError,
    UsageInfo,
)
from kaap.prompts import SystemInstructionBuilder
from kaap.services import (
    ChatTurnRequest,
    ConnectionTestRequest,
    MultiTurnRequest,
    TurnOrchestrator,
    TurnStream,
)

MESSAGES = [ChatMessage(role="user", content="How should I taper before a race?")]


def make_orchestrator(
    resolver: object,
    builder: SystemInstructionBuilder,
    turn_timeout: float = 5.0,
) -> TurnOrchestrator:
    return TurnOrchestrator(
        resolver=resolver,  # type: ignore[arg-type]
        builder=builder,
        default_model="claude-sonnet-4-6",
        turn_timeout=turn_timeout,
    )


async def drain(stream: TurnStream) -> str:
    parts = []
    async for delta in stream:
        parts.append(delta.text)
    return "".join(parts)


class TestCandidates:
    """Tests for candidate list construction."""

    def test_primary_first_then_fallbacks(self, fake_resolver_factory, builder) -> None:
        """Primary precedes fallbacks in caller order."""
        orchestrator = make_orchestrator(fake_resolver_factory({}), builder)

        assert orchestrator.chat_candidates("model-a", ["model-b", "model-c"]) == [
            "model-a",
            "model-b",
            "model-c",
        ]

    def test_normalizes_and_drops_empty_and_duplicates(self, fake_resolver_factory, builder) -> None:
        """Ids are normalized; blanks and repeats are dropped."""
        orchestrator = make_orchestrator(fake_resolver_factory({}), builder)

        candidates = orchestrator.chat_candidates(" Model_A ", ["", "  ", "model-a", "MODEL-B"])

        assert candidates == ["model-a", "model-b"]

    def test_default_model_when_none_given(self, fake_resolver_factory, builder) -> None:
        """Missing primary falls back to the default model."""
        orchestrator = make_orchestrator(fake_resolver_factory({}), builder)

        assert orchestrator.chat_candidates(None, ["model-b"]) == ["claude-sonnet-4-6", "model-b"]

    def test_multi_places_primary_first_when_missing(self, fake_resolver_factory, builder) -> None:
        """Unlisted primary is prepended exactly once."""
        orchestrator = make_orchestrator(fake_resolver_factory({}), builder)

        model_ids, primary = orchestrator.multi_candidates(
            MultiTurnRequest(model_ids=["model-b", "model-c"], model_id="model-a")
        )

        assert model_ids == ["model-a", "model-b", "model-c"]
        assert primary == "model-a"

    def test_multi_keeps_listed_primary_in_place(self, fake_resolver_factory, builder) -> None:
        """Listed primary keeps its position and is not duplicated."""
        orchestrator = make_orchestrator(fake_resolver_factory({}), builder)

        model_ids, primary = orchestrator.multi_candidates(
            MultiTurnRequest(model_ids=["model-b", "Model_A", "model-a"], model_id="model-a")
        )

        assert model_ids == ["model-b", "model-a"]
        assert primary == "model-a"

    def test_multi_primary_defaults_to_first_requested(self, fake_resolver_factory, builder) -> None:
        """Without a model the first requested model is the primary."""
        orchestrator = make_orchestrator(fake_resolver_factory({}), builder)

        model_ids, primary = orchestrator.multi_candidates(
            MultiTurnRequest(model_ids=["model-b", "model-c"])
        )

        assert model_ids == ["model-b", "model-c"]
        assert primary == "model-b"


class TestChatFallback:
    """Tests for the streaming chat path."""

    @pytest.mark.asyncio
    async def test_falls_back_after_resolution_failure(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """A fails to resolve, B serves the turn, C is never attempted."""
        client_b = fake_client_factory(chunks=["Taper ", "for a week."])
        client_c = fake_client_factory()
        resolver = fake_resolver_factory(
            {
                "model-a": CredentialError("Missing ANTHROPIC_API_KEY in the .env file"),
                "model-b": client_b,
                "model-c": client_c,
            }
        )
        orchestrator = make_orchestrator(resolver, builder)

        stream = await orchestrator.chat(
            ChatTurnRequest(
                messages=MESSAGES,
                model_id="model-a",
                fallback_model_ids=["model-b", "model-c"],
            )
        )
        text = await drain(stream)

        assert resolver.attempted == ["model-a", "model-b"]
        assert stream.model_id == "model-b"
        assert stream.completion().model == "model-b"
        assert text == "Taper for a week."
        assert client_c.requests == []

    @pytest.mark.asyncio
    async def test_falls_back_when_stream_fails_to_start(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """A stream that errors before its first event moves to the next candidate."""
        client_a = fake_client_factory(stream_error=RuntimeError("429 rate limit"))
        client_b = fake_client_factory(text="From B")
        resolver = fake_resolver_factory({"model-a": client_a, "model-b": client_b})
        orchestrator = make_orchestrator(resolver, builder)

        stream = await orchestrator.chat(
            ChatTurnRequest(messages=MESSAGES, model_id="model-a", fallback_model_ids=["model-b"])
        )

        assert stream.model_id == "model-b"
        assert await drain(stream) == "From B"
        assert client_a.closed is True

    @pytest.mark.asyncio
    async def test_completion_carries_usage(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Completion metadata reports the provider's token usage."""
        usage = UsageInfo(input_tokens=120, output_tokens=40, total_tokens=160)
        resolver = fake_resolver_factory({"model-a": fake_client_factory(usage=usage)})
        orchestrator = make_orchestrator(resolver, builder)

        stream = await orchestrator.chat(ChatTurnRequest(messages=MESSAGES, model_id="model-a"))
        await drain(stream)
        completion = stream.completion()

        assert completion.input_tokens == 120
        assert completion.output_tokens == 40
        assert completion.total_tokens == 160
        assert stream.done is True

    @pytest.mark.asyncio
    async def test_all_candidates_fail_with_credential_error(
        self, fake_resolver_factory, builder
    ) -> None:
        """Credential failure of the last candidate keeps its 401 status."""
        resolver = fake_resolver_factory(
            {
                "model-a": RuntimeError("boom"),
                "model-b": CredentialError("Missing OPENAI_API_KEY in the .env file"),
            }
        )
        orchestrator = make_orchestrator(resolver, builder)

        with pytest.raises(TurnFailedError) as exc_info:
            await orchestrator.chat(
                ChatTurnRequest(messages=MESSAGES, model_id="model-a", fallback_model_ids=["model-b"])
            )

        assert exc_info.value.status_code == 401
        assert "OPENAI_API_KEY" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_all_candidates_fail_with_model_unavailable(
        self, fake_resolver_factory, builder
    ) -> None:
        """Model availability failure keeps its 400 status."""
        resolver = fake_resolver_factory({"gemini-x": ModelUnavailableError("gemini-x")})
        orchestrator = make_orchestrator(resolver, builder)

        with pytest.raises(TurnFailedError) as exc_info:
            await orchestrator.chat(ChatTurnRequest(messages=MESSAGES, model_id="gemini-x"))

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_all_candidates_fail_with_opaque_error(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Opaque failures surface as 500 with the raw message as details."""
        client = fake_client_factory(stream_error=RuntimeError("503 service unavailable"))
        resolver = fake_resolver_factory({"model-a": client})
        orchestrator = make_orchestrator(resolver, builder)

        with pytest.raises(TurnFailedError) as exc_info:
            await orchestrator.chat(ChatTurnRequest(messages=MESSAGES, model_id="model-a"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Failed to generate a response."
        assert exc_info.value.details == "503 service unavailable"

    @pytest.mark.asyncio
    async def test_no_retry_after_first_output(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Errors after output has started end the turn without fallback."""
        client_a = fake_client_factory(chunks=["Partial"], mid_stream_error=RuntimeError("connection reset"))
        client_b = fake_client_factory()
        resolver = fake_resolver_factory({"model-a": client_a, "model-b": client_b})
        orchestrator = make_orchestrator(resolver, builder)

        stream = await orchestrator.chat(
            ChatTurnRequest(messages=MESSAGES, model_id="model-a", fallback_model_ids=["model-b"])
        )

        received = []
        with pytest.raises(RuntimeError, match="connection reset"):
            async for delta in stream:
                received.append(delta.text)

        assert received == ["Partial"]
        assert resolver.attempted == ["model-a"]
        assert client_b.requests == []

    @pytest.mark.asyncio
    async def test_per_model_system_prompt_precedence(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Per-model prompt wins; other candidates use the request-level prompt."""
        client_a = fake_client_factory(stream_error=RuntimeError("down"))
        client_b = fake_client_factory()
        resolver = fake_resolver_factory({"model-a": client_a, "model-b": client_b})
        orchestrator = make_orchestrator(resolver, builder)

        stream = await orchestrator.chat(
            ChatTurnRequest(
                messages=MESSAGES,
                model_id="model-a",
                fallback_model_ids=["model-b"],
                model_system_prompt="Generic prompt",
                model_system_prompts={"model-a": "Prompt for A"},
            )
        )
        await drain(stream)

        assert "Prompt for A" in (client_a.requests[0].system or "")
        assert "Generic prompt" not in (client_a.requests[0].system or "")
        assert "Generic prompt" in (client_b.requests[0].system or "")

    @pytest.mark.asyncio
    async def test_passes_sampling_and_history(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Temperature, top-p, history and registry max tokens reach the provider."""
        client = fake_client_factory()
        resolver = fake_resolver_factory({"gpt-4o": client})
        orchestrator = make_orchestrator(resolver, builder)

        stream = await orchestrator.chat(
            ChatTurnRequest(messages=MESSAGES, model_id="gpt-4o", temperature=0.4, top_p=0.9)
        )
        await drain(stream)

        request = client.requests[0]
        assert request.model == "gpt-4o"
        assert request.messages == MESSAGES
        assert request.temperature == 0.4
        assert request.top_p == 0.9
        assert request.max_tokens == 16384

    @pytest.mark.asyncio
    async def test_timeout_before_stream_starts(self, fake_resolver_factory, builder) -> None:
        """Turn ceiling reached during resolution raises a 504 timeout."""
        resolver = fake_resolver_factory({}, delay=1.0)
        orchestrator = make_orchestrator(resolver, builder, turn_timeout=0.05)

        with pytest.raises(TurnTimeoutError) as exc_info:
            await orchestrator.chat(ChatTurnRequest(messages=MESSAGES, model_id="model-a"))

        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_timeout_while_streaming(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Turn ceiling reached mid-stream ends iteration with a timeout."""
        client = fake_client_factory(chunks=["first", "second"], chunk_delay=1.0)
        resolver = fake_resolver_factory({"model-a": client})
        orchestrator = make_orchestrator(resolver, builder, turn_timeout=0.1)

        stream = await orchestrator.chat(ChatTurnRequest(messages=MESSAGES, model_id="model-a"))

        received = []
        with pytest.raises(TurnTimeoutError):
            async for delta in stream:
                received.append(delta.text)

        assert received == ["first"]

    @pytest.mark.asyncio
    async def test_aclose_stops_provider_stream(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Closing the stream closes the provider generator."""
        client = fake_client_factory(chunks=["a", "b", "c"])
        resolver = fake_resolver_factory({"model-a": client})
        orchestrator = make_orchestrator(resolver, builder)

        stream = await orchestrator.chat(ChatTurnRequest(messages=MESSAGES, model_id="model-a"))
        await stream.aclose()

        assert client.closed is True


class TestConnectionTest:
    """Tests for the connectivity test path."""

    @pytest.mark.asyncio
    async def test_successful_test(self, fake_client_factory, fake_resolver_factory, builder) -> None:
        """Sends the trivial prompt at zero temperature and echoes the text."""
        client = fake_client_factory(text="pong")
        resolver = fake_resolver_factory({"gpt-4o": client})
        orchestrator = make_orchestrator(resolver, builder)

        result = await orchestrator.test(ConnectionTestRequest(model_id="GPT-4o"))

        assert result.model == "gpt-4o"
        assert result.text == "pong"
        request = client.requests[0]
        assert request.temperature == 0.0
        assert request.max_tokens == 16384
        assert request.messages == [ChatMessage(role="user", content="ping")]

    @pytest.mark.asyncio
    async def test_chat_error_propagates_unchanged(self, fake_resolver_factory, builder) -> None:
        """Credential errors keep their type and status."""
        error = CredentialError("Missing DEEPSEEK_API_KEY in the .env file")
        resolver = fake_resolver_factory({"deepseek-chat": error})
        orchestrator = make_orchestrator(resolver, builder)

        with pytest.raises(CredentialError) as exc_info:
            await orchestrator.test(ConnectionTestRequest(model_id="deepseek-chat"))

        assert exc_info.value is error
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_opaque_error_becomes_server_error(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Provider failures surface as 500 with the raw message."""
        client = fake_client_factory(error=RuntimeError("invalid x-api-key"))
        resolver = fake_resolver_factory({"claude-sonnet-4-6": client})
        orchestrator = make_orchestrator(resolver, builder)

        with pytest.raises(ChatError) as exc_info:
            await orchestrator.test(ConnectionTestRequest())

        assert exc_info.value.status_code == 500
        assert exc_info.value.details == "invalid x-api-key"


class TestMulti:
    """Tests for multi-model comparison and merge."""

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_request_order(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """A fails, B succeeds: one error and one success, in request order."""
        client_b = fake_client_factory(text="Answer from B")
        resolver = fake_resolver_factory(
            {"model-a": CredentialError("Missing OPENAI_API_KEY in the .env file"), "model-b": client_b}
        )
        orchestrator = make_orchestrator(resolver, builder)

        result = await orchestrator.multi(
            MultiTurnRequest(model_ids=["model-a", "model-b"], messages=MESSAGES)
        )

        assert [r.model for r in result.results] == ["model-a", "model-b"]
        assert result.results[0].error is not None
        assert "OPENAI_API_KEY" in result.results[0].error
        assert result.results[0].text is None
        assert result.results[1].text == "Answer from B"
        assert result.results[1].error is None
        assert result.merged_text

    @pytest.mark.asyncio
    async def test_merge_uses_primary_and_lists_all_outputs(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Merge prompt labels each output or error and goes to the primary."""
        client_a = fake_client_factory(error=RuntimeError("quota exceeded"))
        client_b = fake_client_factory(text="Answer from B")
        resolver = fake_resolver_factory({"model-a": client_a, "model-b": client_b})
        orchestrator = make_orchestrator(resolver, builder)

        result = await orchestrator.multi(
            MultiTurnRequest(model_ids=["model-a", "model-b"], model_id="model-b", messages=MESSAGES)
        )

        # Second request to B is the merge call
        assert len(client_b.requests) == 2
        merge_prompt = client_b.requests[1].messages[0].content
        assert "Model model-a error: quota exceeded" in merge_prompt
        assert "Model model-b:\nAnswer from B" in merge_prompt
        assert result.merged_text == "Answer from B"

    @pytest.mark.asyncio
    async def test_merge_failure_degrades_inline(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """A failed merge is described in merged_text; results survive."""
        resolver = fake_resolver_factory(
            {"model-a": RuntimeError("down"), "model-b": fake_client_factory(text="ok")}
        )
        orchestrator = make_orchestrator(resolver, builder)

        result = await orchestrator.multi(
            MultiTurnRequest(model_ids=["model-a", "model-b"], model_id="model-a", messages=MESSAGES)
        )

        assert result.merged_text.startswith("Failed to merge the answers:")
        assert "down" in result.merged_text
        assert result.results[1].text == "ok"

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Per-model calls overlap instead of running one after another."""
        resolver = fake_resolver_factory(
            {"model-a": fake_client_factory(), "model-b": fake_client_factory(), "model-c": fake_client_factory()},
            delay=0.2,
        )
        orchestrator = make_orchestrator(resolver, builder)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.multi(
            MultiTurnRequest(model_ids=["model-a", "model-b", "model-c"], messages=MESSAGES)
        )
        elapsed = loop.time() - started

        # Three comparison resolutions in parallel plus one merge resolution
        assert elapsed < 0.6

    @pytest.mark.asyncio
    async def test_empty_model_list_rejected(self, fake_resolver_factory, builder) -> None:
        """No requested models is a 400 before any call."""
        resolver = fake_resolver_factory({})
        orchestrator = make_orchestrator(resolver, builder)

        with pytest.raises(EmptyModelListError) as exc_info:
            await orchestrator.multi(MultiTurnRequest(model_ids=["", "  "], model_id="model-a"))

        assert exc_info.value.status_code == 400
        assert resolver.attempted == []

    @pytest.mark.asyncio
    async def test_usage_reported_per_model(
        self, fake_client_factory, fake_resolver_factory, builder
    ) -> None:
        """Successful entries carry their usage."""
        usage = UsageInfo(input_tokens=7, output_tokens=3, total_tokens=10)
        resolver = fake_resolver_factory({"model-a": fake_client_factory(usage=usage)})
        orchestrator = make_orchestrator(resolver, builder)

        result = await orchestrator.multi(MultiTurnRequest(model_ids=["model-a"], messages=MESSAGES))

        assert result.results[0].usage == usage
