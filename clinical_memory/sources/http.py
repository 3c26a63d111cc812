"""Patient data source that fetches chart JSON over HTTP."""

import logging
from typing import Any, Optional

import httpx

from clinical_memory.sources.base import (
    ChartLayoutSource,
    SourceFormatError,
    SourceLoadError,
    SourceNotFoundError,
)

logger = logging.getLogger(__name__)


class HttpPatientSource(ChartLayoutSource):
    """Fetches ``<base_url>/<patient_id>/...`` with a per-path response cache."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize HTTP source.

        Args:
            base_url: Root URL of the chart tree
            timeout: Request timeout in seconds
            client: Pre-built client (tests inject one with a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=5.0))
        self._cache: dict[str, Any] = {}

    @classmethod
    def from_settings(cls) -> "HttpPatientSource":
        from clinical_memory.config import get_settings

        settings = get_settings()
        return cls(settings.data_base_url, timeout=settings.http_timeout)

    async def fetch_json(self, path: str) -> Any:
        url = f"{self.base_url}/{path}"
        if url in self._cache:
            return self._cache[url]

        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise SourceLoadError(f"GET {url} failed: {e}") from e

        if response.status_code == 404:
            raise SourceNotFoundError(f"GET {url}: 404")
        if response.status_code >= 400:
            raise SourceLoadError(f"GET {url}: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise SourceFormatError(f"GET {url}: invalid JSON") from e

        self._cache[url] = data
        return data

    def invalidate(self) -> None:
        """Drop cached responses (needed before an incremental refresh)."""
        self._cache.clear()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpPatientSource":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
