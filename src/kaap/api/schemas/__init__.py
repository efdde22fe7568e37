"""API request/response schemas."""

from .requests import ChatRequest
from .responses import (
    ErrorResponse,
    FinishEvent,
    ModelInfoResponse,
    ModelResultResponse,
    MultiResponse,
    ConnectionTestResponse,
    UsageResponse,
)

__all__ = [
    # Requests
    "ChatRequest",
    # Responses
    "ErrorResponse",
    "FinishEvent",
    "ModelInfoResponse",
    "ModelResultResponse",
    "MultiResponse",
    "ConnectionTestResponse",
    "UsageResponse",
]
