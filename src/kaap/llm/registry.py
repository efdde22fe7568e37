"""Model registry.

Holds the built-in model catalog plus user-added custom models.
Custom models are persisted in the key-value store under ``user-models``.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .models import BUILTIN_MODELS, ModelDescriptor, Provider
from .normalizer import normalize_stored_model_id

if TYPE_CHECKING:
    from kaap.usage.store import KeyValueStore

logger = structlog.get_logger()

USER_MODELS_KEY = "user-models"


class ModelRegistry:
    """Unified registry for built-in and custom models."""

    def __init__(
        self,
        builtin: tuple[ModelDescriptor, ...] = BUILTIN_MODELS,
        custom: list[ModelDescriptor] | None = None,
    ) -> None:
        """Initialize model registry.

        Args:
            builtin: Built-in catalog (searched first)
            custom: Optional user-added models
        """
        self._builtin = builtin
        self._custom: list[ModelDescriptor] = list(custom or [])

    def get(self, model_id: str) -> ModelDescriptor | None:
        """Get model by id.

        Args:
            model_id: Model id to retrieve

        Returns:
            Model descriptor if found, None otherwise

        Note:
            Built-in models are searched before custom models; the first
            match wins.
        """
        for model in self._builtin:
            if model.id == model_id:
                return model
        for model in self._custom:
            if model.id == model_id:
                return model
        return None

    def get_all(self) -> list[ModelDescriptor]:
        """Get all models in lookup order."""
        return [*self._builtin, *self._custom]

    @property
    def custom_models(self) -> list[ModelDescriptor]:
        """User-added models."""
        return list(self._custom)

    def add_custom_model(self, model: ModelDescriptor) -> None:
        """Append a user-defined model."""
        self._custom.append(model)
        logger.info(
            "custom_model_added",
            model=model.id,
            provider=model.provider.value,
            input_price=str(model.input_price_per_million),
        )

    def remove_custom_model(self, model_id: str) -> bool:
        """Remove a user-defined model.

        Args:
            model_id: Model id to remove

        Returns:
            True if a model was removed, False if not found
        """
        remaining = [m for m in self._custom if m.id != model_id]
        if len(remaining) == len(self._custom):
            return False
        self._custom = remaining
        logger.info("custom_model_removed", model=model_id)
        return True

    async def load_custom_models(self, store: KeyValueStore) -> None:
        """Replace custom models with those persisted in the store.

        Stored ids pass through the deprecated-alias rewrite. Entries that
        fail validation are skipped; unreadable storage clears the list.
        """
        raw = await store.get(USER_MODELS_KEY)
        if not raw:
            self._custom = []
            return

        try:
            entries = _STORED_ENTRIES.validate_json(raw)
        except ValidationError:
            logger.warning("custom_models_corrupt", key=USER_MODELS_KEY)
            self._custom = []
            return

        models: list[ModelDescriptor] = []
        for entry in entries:
            try:
                stored = StoredModel.model_validate(entry)
            except ValidationError as e:
                logger.warning(
                    "custom_model_invalid",
                    model=entry.get("id") if isinstance(entry, dict) else None,
                    errors=e.error_count(),
                )
                continue
            models.append(stored.to_descriptor())

        self._custom = models
        logger.debug("custom_models_loaded", count=len(models))

    async def save_custom_models(self, store: KeyValueStore) -> None:
        """Persist custom models to the store."""
        payload = [StoredModel.from_descriptor(m).model_dump(mode="json", by_alias=True) for m in self._custom]
        await store.set(USER_MODELS_KEY, json.dumps(payload))


class StoredModel(BaseModel):
    """A custom model as the chat UI persists it (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1)
    name: str | None = None
    provider: Provider = Provider.ANTHROPIC
    input_price: Decimal = Field(default=Decimal("0"), ge=0)
    output_price: Decimal = Field(default=Decimal("0"), ge=0)
    max_output_tokens: int | None = Field(default=None, gt=0)
    description: str | None = None

    @classmethod
    def from_descriptor(cls, model: ModelDescriptor) -> StoredModel:
        return cls(
            id=model.id,
            name=model.display_name,
            provider=model.provider,
            input_price=model.input_price_per_million,
            output_price=model.output_price_per_million,
            max_output_tokens=model.max_output_tokens,
            description=model.description,
        )

    def to_descriptor(self) -> ModelDescriptor:
        """Build a descriptor, rewriting a deprecated stored id."""
        return ModelDescriptor(
            id=normalize_stored_model_id(self.id),
            provider=self.provider,
            input_price_per_million=self.input_price,
            output_price_per_million=self.output_price,
            display_name=self.name or self.id,
            description=self.description or "",
            max_output_tokens=self.max_output_tokens,
        )


_STORED_ENTRIES = TypeAdapter(list[Any])
