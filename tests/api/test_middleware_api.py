"""Middleware tests."""

import uuid
from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from kaap.llm import CredentialError

USER_MESSAGE = {"id": "m1", "role": "user", "parts": [{"type": "text", "text": "Plan my week"}]}


@pytest.fixture
def middleware_logger() -> Iterator[MagicMock]:
    with patch("kaap.api.middleware.logger") as mock_logger:
        yield mock_logger


def completed_event(mock_method: MagicMock) -> dict[str, Any]:
    for call in mock_method.call_args_list:
        if call.args[0] == "request_completed":
            return dict(call.kwargs)
    raise AssertionError("request_completed was not logged")


class TestRequestID:
    """Tests for RequestIDMiddleware."""

    def test_generates_request_id(self, client: TestClient) -> None:
        """A request without an ID gets a UUID."""
        response = client.get("/health")

        uuid.UUID(response.headers["X-Request-ID"])

    def test_echoes_request_id(self, client: TestClient) -> None:
        """A supplied ID is echoed back."""
        response = client.get("/health", headers={"X-Request-ID": "trace-42"})

        assert response.headers["X-Request-ID"] == "trace-42"

    def test_binds_request_id_to_log_context(self, app: FastAPI) -> None:
        """Log events emitted by handlers carry the request ID."""

        @app.get("/api/log-context")
        async def log_context() -> dict[str, Any]:
            return structlog.contextvars.get_contextvars()

        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/api/log-context", headers={"X-Request-ID": "trace-7"})

        assert response.json()["request_id"] == "trace-7"
        assert "request_id" not in structlog.contextvars.get_contextvars()


class TestLogging:
    """Tests for LoggingMiddleware."""

    def test_response_time_header(self, client: TestClient) -> None:
        """Responses carry their handling time."""
        response = client.get("/health")

        assert response.headers["X-Response-Time"].endswith("ms")

    def test_logs_serving_model_after_fallback(
        self,
        client: TestClient,
        use_providers: Any,
        fake_client_factory: Any,
        middleware_logger: MagicMock,
    ) -> None:
        """The completion event names the fallback model that answered."""
        use_providers(
            {
                "gpt-4o": CredentialError("Missing OPENAI_API_KEY in the .env file"),
                "claude-3-haiku-20240307": fake_client_factory(text="Short answer"),
            }
        )

        client.post(
            "/api/chat",
            json={"messages": [USER_MESSAGE], "model": "gpt-4o", "fallbackModels": ["claude-3-haiku-20240307"]},
        )

        event = completed_event(middleware_logger.info)
        assert event["path"] == "/api/chat"
        assert event["status_code"] == 200
        assert event["model"] == "claude-3-haiku-20240307"

    def test_server_errors_log_as_warning(
        self,
        client: TestClient,
        use_providers: Any,
        fake_client_factory: Any,
        middleware_logger: MagicMock,
    ) -> None:
        """Failed turns are logged at warning level without a model."""
        use_providers({"gpt-4o": fake_client_factory(stream_error=RuntimeError("upstream exploded"))})

        response = client.post("/api/chat", json={"messages": [USER_MESSAGE], "model": "gpt-4o"})

        assert response.status_code == 500
        event = completed_event(middleware_logger.warning)
        assert event["status_code"] == 500
        assert event["model"] is None

    def test_health_checks_log_at_debug(self, client: TestClient, middleware_logger: MagicMock) -> None:
        client.get("/health")

        assert completed_event(middleware_logger.debug)["path"] == "/health"
        middleware_logger.info.assert_not_called()


class TestCORS:
    """Tests for CORS configuration."""

    def test_exposes_model_header(self, client: TestClient) -> None:
        """Browsers may read X-Model and X-Request-ID."""
        response = client.get("/health", headers={"Origin": "http://localhost:3000"})

        exposed = response.headers["access-control-expose-headers"]
        assert "X-Model" in exposed
        assert "X-Request-ID" in exposed

    def test_preflight(self, client: TestClient) -> None:
        """Preflight requests from the UI origin are allowed."""
        response = client.options(
            "/api/chat",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
