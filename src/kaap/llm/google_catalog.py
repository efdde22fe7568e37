"""Google model availability lookup.

Lists the models visible to a Google API key so unavailable models can
be rejected before a generation call. Listing failures yield an empty
list, which callers treat as "unknown" and skip the check.
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kaap.cache.catalog import ModelCatalogCache

logger = structlog.get_logger()

CATALOG_TTL_SECONDS = 300


class GoogleModelEntry(BaseModel):
    name: str | None = None


class GoogleModelList(BaseModel):
    """Body of a list-models response; unknown fields are ignored."""

    models: list[GoogleModelEntry] | None = None


class GoogleModelCatalog:
    """Fetches and caches Google's list-models response per API key."""

    def __init__(
        self,
        cache: ModelCatalogCache,
        models_url: str,
        ttl: float = CATALOG_TTL_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the catalog.

        Args:
            cache: Catalog cache shared across requests
            models_url: Google list-models endpoint
            ttl: Cache lifetime in seconds
            http_client: Optional shared HTTP client
            timeout: HTTP timeout in seconds
        """
        self._cache = cache
        self._models_url = models_url
        self._ttl = ttl
        self._http = http_client
        self._timeout = timeout

    async def list_models(self, api_key: str) -> list[str]:
        """Get model ids visible to ``api_key``.

        Returns:
            Model ids without the ``models/`` prefix; empty if listing failed
        """
        cached = await self._cache.get(api_key)
        if cached is not None:
            return cached

        try:
            models = await self._fetch_with_retry(api_key)
        except httpx.HTTPError as e:
            logger.warning("google_model_list_failed", error=type(e).__name__)
            return []

        if models is None:
            return []

        await self._cache.put(api_key, models, self._ttl)
        logger.info("google_model_list_loaded", count=len(models))
        return models

    async def _fetch_with_retry(self, api_key: str) -> list[str] | None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await self._fetch(api_key)
        return None

    async def _fetch(self, api_key: str) -> list[str] | None:
        """Single list-models request; None on a non-success status."""
        if self._http is not None:
            response = await self._http.get(self._models_url, params={"key": api_key})
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._models_url, params={"key": api_key})

        if response.status_code != 200:
            logger.warning("google_model_list_rejected", status_code=response.status_code)
            return None

        try:
            payload = GoogleModelList.model_validate_json(response.content)
        except ValidationError as e:
            logger.warning("google_model_list_failed", error=type(e).__name__, errors=e.error_count())
            return None

        names = (entry.name for entry in payload.models or [])
        return [name.removeprefix("models/") for name in names if name]
