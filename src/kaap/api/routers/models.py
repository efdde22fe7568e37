"""Model registry endpoints."""

from fastapi import APIRouter

from kaap.llm import normalize_model_id

from ..dependencies import Registry
from ..exceptions import NotFoundError
from ..schemas import ModelInfoResponse

router = APIRouter(prefix="/models", tags=["models"])


@router.get("", response_model=list[ModelInfoResponse])
async def list_models(registry: Registry) -> list[ModelInfoResponse]:
    """List built-in and custom models in lookup order.

    Args:
        registry: Model registry

    Returns:
        Registry entries with prices per million tokens
    """
    return [ModelInfoResponse.from_descriptor(m) for m in registry.get_all()]


@router.get("/{model_id}", response_model=ModelInfoResponse)
async def get_model(model_id: str, registry: Registry) -> ModelInfoResponse:
    """Get one registry entry.

    Args:
        model_id: Model id (normalized before lookup)
        registry: Model registry

    Returns:
        Registry entry

    Raises:
        NotFoundError: Model not in the registry
    """
    model = registry.get(normalize_model_id(model_id))
    if model is None:
        raise NotFoundError("Model", model_id)
    return ModelInfoResponse.from_descriptor(model)
