"""API test fixtures."""

from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from kaap.api.dependencies import get_orchestrator, get_registry
from kaap.api.main import create_app
from kaap.llm import ModelRegistry
from kaap.prompts import SystemInstructionBuilder
from kaap.services import TurnOrchestrator


@pytest.fixture
def api_registry() -> ModelRegistry:
    return ModelRegistry()


@pytest.fixture
def app(api_registry: ModelRegistry) -> Iterator[FastAPI]:
    application = create_app()
    application.dependency_overrides[get_registry] = lambda: api_registry
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client without lifespan (no Redis)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def use_providers(
    app: FastAPI,
    api_registry: ModelRegistry,
    builder: SystemInstructionBuilder,
    fake_resolver_factory: Any,
) -> Any:
    """Serve chat turns from fake provider outcomes."""

    def install(outcomes: dict[str, Any], turn_timeout: float = 5.0) -> Any:
        resolver = fake_resolver_factory(outcomes, registry=api_registry)
        orchestrator = TurnOrchestrator(
            resolver, builder, default_model="claude-sonnet-4-6", turn_timeout=turn_timeout
        )
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        return resolver

    return install
