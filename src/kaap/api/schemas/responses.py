"""Response schemas for API endpoints."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kaap.llm.models import ModelDescriptor
from kaap.services.schemas import ModelResult, MultiTurnResult, TurnCompletion


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="User-facing error message")
    details: str | None = Field(default=None, description="Diagnostic detail")
    code: str = Field(..., description="Error code")
    request_id: str | None = Field(default=None, description="Request ID for tracing")


class UsageResponse(_CamelModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class ConnectionTestResponse(BaseModel):
    """Successful connectivity test."""

    ok: bool = True
    model: str
    text: str


class ModelResultResponse(BaseModel):
    """One model's answer (or error) in a multi-mode response."""

    model: str
    text: str | None = None
    error: str | None = None
    usage: UsageResponse | None = None

    @classmethod
    def from_result(cls, result: ModelResult) -> ModelResultResponse:
        usage = None
        if result.usage is not None:
            usage = UsageResponse(
                input_tokens=result.usage.input_tokens,
                output_tokens=result.usage.output_tokens,
                total_tokens=result.usage.total_tokens,
            )
        return cls(model=result.model, text=result.text, error=result.error, usage=usage)


class MultiResponse(_CamelModel):
    """Per-model results in request order plus the merged answer."""

    ok: bool = True
    results: list[ModelResultResponse]
    merged_text: str

    @classmethod
    def from_result(cls, result: MultiTurnResult) -> MultiResponse:
        return cls(
            results=[ModelResultResponse.from_result(r) for r in result.results],
            merged_text=result.merged_text,
        )


class FinishEvent(_CamelModel):
    """Payload of the stream's ``finish`` event."""

    type: str = "finish"
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_completion(cls, completion: TurnCompletion) -> FinishEvent:
        return cls(
            model=completion.model,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            total_tokens=completion.total_tokens,
        )


class ModelInfoResponse(_CamelModel):
    """Registry entry."""

    id: str
    name: str
    provider: str
    input_price: Decimal = Field(..., description="USD per million input tokens")
    output_price: Decimal = Field(..., description="USD per million output tokens")
    max_output_tokens: int | None = None
    description: str = ""

    @classmethod
    def from_descriptor(cls, model: ModelDescriptor) -> ModelInfoResponse:
        return cls(
            id=model.id,
            name=model.display_name,
            provider=model.provider.value,
            input_price=model.input_price_per_million,
            output_price=model.output_price_per_million,
            max_output_tokens=model.max_output_tokens,
            description=model.description,
        )
