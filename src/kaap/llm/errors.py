"""Chat turn errors and user-facing error classification."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


class ChatError(Exception):
    """Base exception for failures reported to the caller.

    Carries an HTTP-like status code and a user-facing message.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        """Initialize chat error.

        Args:
            message: User-facing error message
            status_code: HTTP status code (defaults to the class status)
            details: Diagnostic detail (defaults to the message)
        """
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details if details is not None else message


class CredentialError(ChatError):
    """Provider API key is missing or was rejected."""

    status_code = 401


class ModelUnavailableError(ChatError):
    """Requested model is not visible to the supplied API key."""

    status_code = 400

    def __init__(self, model_id: str) -> None:
        super().__init__(f'Model "{model_id}" is not available for this key.')
        self.model_id = model_id


class TurnFailedError(ChatError):
    """Every candidate model failed to serve a turn."""


class TurnTimeoutError(ChatError):
    """Turn exceeded the overall wall-clock ceiling."""

    status_code = 504

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            "Request timeout: the model did not respond in time.",
            details=f"Turn exceeded {timeout_seconds:g}s",
        )
        self.timeout_seconds = timeout_seconds


class EmptyModelListError(ChatError):
    """Multi-mode request named no models to compare."""

    status_code = 400

    def __init__(self) -> None:
        super().__init__("No models to compare.")


class EmptySubmissionError(ChatError):
    """Submission has neither text nor attachments."""

    status_code = 400

    def __init__(self) -> None:
        super().__init__("Message is empty. Type a message or attach a file.")


@dataclass(frozen=True)
class ErrorInfo:
    """Classified error presented to the user."""

    code: str
    description: str


_ERROR_RULES: tuple[tuple[Callable[[str], bool], ErrorInfo], ...] = (
    (
        lambda m: "openai_api_key" in m,
        ErrorInfo("E_AUTH_OPENAI", "Missing or invalid OpenAI key."),
    ),
    (
        lambda m: "google_api_key" in m or "google_ai_studio_api_key" in m,
        ErrorInfo("E_AUTH_GOOGLE", "Missing or invalid Google AI key."),
    ),
    (
        lambda m: "anthropic_api_key" in m,
        ErrorInfo("E_AUTH_ANTHROPIC", "Missing or invalid Anthropic key."),
    ),
    (
        lambda m: "deepseek_api_key" in m,
        ErrorInfo("E_AUTH_DEEPSEEK", "Missing or invalid DeepSeek key."),
    ),
    (
        lambda m: "insufficient" in m or "quota" in m,
        ErrorInfo("E_QUOTA", "Insufficient funds or account quota exceeded."),
    ),
    (
        lambda m: "context length" in m or "maximum context" in m,
        ErrorInfo("E_CONTEXT", "Context too long. Shorten the message or remove attachments."),
    ),
    (
        lambda m: "model" in m and ("not found" in m or "not available" in m),
        ErrorInfo("E_MODEL_NOT_FOUND", "The selected model does not exist or is not available for this key."),
    ),
    (
        lambda m: "400" in m,
        ErrorInfo("E_BAD_REQUEST", "Invalid request. Check the model and the message."),
    ),
    (
        lambda m: "401" in m or "unauthorized" in m,
        ErrorInfo("E_UNAUTHORIZED", "Not authorized. Check the API key."),
    ),
    (
        lambda m: "403" in m or "forbidden" in m,
        ErrorInfo("E_FORBIDDEN", "No permission to use this model."),
    ),
    (
        lambda m: "404" in m,
        ErrorInfo("E_NOT_FOUND", "Resource not found (check the model and provider)."),
    ),
    (
        lambda m: "413" in m,
        ErrorInfo("E_TOO_LARGE", "Request or files too large."),
    ),
    (
        lambda m: "429" in m or "rate" in m,
        ErrorInfo("E_RATE_LIMIT", "Rate limit exceeded. Try again in a moment."),
    ),
    (
        lambda m: "timeout" in m,
        ErrorInfo("E_TIMEOUT", "Request timed out. Try again."),
    ),
    (
        lambda m: "502" in m or "bad gateway" in m,
        ErrorInfo("E_BAD_GATEWAY", "Provider-side problem. Try again."),
    ),
    (
        lambda m: "503" in m or "service unavailable" in m,
        ErrorInfo("E_UNAVAILABLE", "Service temporarily unavailable. Try later."),
    ),
    (
        lambda m: "504" in m or "gateway timeout" in m,
        ErrorInfo("E_GATEWAY_TIMEOUT", "The server did not respond in time. Try again."),
    ),
    (
        lambda m: "500" in m or "internal server error" in m,
        ErrorInfo("E_SERVER", "Server error. Try again later."),
    ),
)

UNKNOWN_ERROR = ErrorInfo("E_UNKNOWN", "An unknown error occurred. Try again.")


def classify_error(raw_message: str) -> ErrorInfo:
    """Map a raw provider/transport error message to a user-facing code.

    Rules are checked in order; the first match wins. Classification
    is presentation-only and never affects retry behavior.

    Args:
        raw_message: Error text as raised by a provider or the gateway

    Returns:
        Matching ErrorInfo, or UNKNOWN_ERROR
    """
    lower = raw_message.lower()
    for matches, info in _ERROR_RULES:
        if matches(lower):
            return info
    return UNKNOWN_ERROR
