"""Error types and classification tests."""

import pytest

from kaap.llm import (
    ChatError,
    CredentialError,
    EmptyModelListError,
    EmptySubmissionError,
    ModelUnavailableError,
    TurnTimeoutError,
    classify_error,
)
from kaap.llm.errors import UNKNOWN_ERROR


class TestChatErrors:
    """Tests for chat error status codes and messages."""

    def test_base_defaults(self) -> None:
        """Details default to the message; status defaults to 500."""
        error = ChatError("Something broke")

        assert error.status_code == 500
        assert error.details == "Something broke"
        assert str(error) == "Something broke"

    def test_explicit_status_overrides_class_status(self) -> None:
        """Explicit status wins over the class default."""
        error = CredentialError("Missing OPENAI_API_KEY in the .env file", status_code=403)

        assert error.status_code == 403

    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (CredentialError("Missing ANTHROPIC_API_KEY in the .env file"), 401),
            (ModelUnavailableError("gemini-ultra"), 400),
            (TurnTimeoutError(30), 504),
            (EmptyModelListError(), 400),
            (EmptySubmissionError(), 400),
        ],
    )
    def test_status_codes(self, error: ChatError, status: int) -> None:
        """Each error kind carries its HTTP status."""
        assert error.status_code == status

    def test_model_unavailable_names_model(self) -> None:
        """Unavailable-model message names the model."""
        error = ModelUnavailableError("gemini-ultra")

        assert "gemini-ultra" in error.message
        assert error.model_id == "gemini-ultra"

    def test_timeout_details(self) -> None:
        """Timeout details carry the ceiling."""
        error = TurnTimeoutError(12.5)

        assert error.details == "Turn exceeded 12.5s"
        assert error.timeout_seconds == 12.5


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        ("message", "code"),
        [
            ("Missing OPENAI_API_KEY in the .env file", "E_AUTH_OPENAI"),
            ("Missing GOOGLE_API_KEY (or GOOGLE_AI_STUDIO_API_KEY) in the .env file", "E_AUTH_GOOGLE"),
            ("Missing ANTHROPIC_API_KEY in the .env file", "E_AUTH_ANTHROPIC"),
            ("Missing DEEPSEEK_API_KEY in the .env file", "E_AUTH_DEEPSEEK"),
            ("You exceeded your current quota", "E_QUOTA"),
            ("This model's maximum context length is 8192 tokens", "E_CONTEXT"),
            ('Model "gemini-ultra" is not available for this key.', "E_MODEL_NOT_FOUND"),
            ("Error code: 400 - bad request", "E_BAD_REQUEST"),
            ("Unauthorized", "E_UNAUTHORIZED"),
            ("403 Forbidden", "E_FORBIDDEN"),
            ("404 page", "E_NOT_FOUND"),
            ("413 payload", "E_TOO_LARGE"),
            ("429 Too Many Requests", "E_RATE_LIMIT"),
            ("Request timeout: the model did not respond in time.", "E_TIMEOUT"),
            ("502 Bad Gateway", "E_BAD_GATEWAY"),
            ("503 Service Unavailable", "E_UNAVAILABLE"),
            ("Gateway Timeout", "E_TIMEOUT"),
            ("500 Internal Server Error", "E_SERVER"),
        ],
    )
    def test_known_messages(self, message: str, code: str) -> None:
        """Known failure messages map to their codes."""
        assert classify_error(message).code == code

    def test_first_matching_rule_wins(self) -> None:
        """A key error mentioning 401 is classified by the key rule."""
        assert classify_error("401: invalid OPENAI_API_KEY").code == "E_AUTH_OPENAI"

    def test_unknown_message(self) -> None:
        """Unrecognized messages fall through to the unknown code."""
        assert classify_error("something odd happened") == UNKNOWN_ERROR

    def test_case_insensitive(self) -> None:
        """Matching ignores case."""
        assert classify_error("INSUFFICIENT FUNDS").code == "E_QUOTA"
