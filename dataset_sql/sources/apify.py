"""
Remote dataset source backed by the Apify API v2.

Endpoints used:
- `GET /v2/datasets/{id}` for the item count (`data.itemCount`);
- `GET /v2/datasets/{id}/items?offset=&limit=&format=json` for a page.

The source does not retry: a failed page read surfaces as FetchError and the
loader aborts the run. Recovery happens across runs via the loading state.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx

from dataset_sql.config import get_settings
from dataset_sql.errors import FetchError
from dataset_sql.sources.abstract import AbstractCollectionSource
from dataset_sql.utils.logging import get_logger

log = get_logger(__name__)


def build_api_client(
    token: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create an HTTP client for the platform API from explicit values or settings.
    """
    settings = get_settings()
    token = token if token is not None else settings.apify_token
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(
        base_url=base_url or settings.apify_api_base_url,
        headers=headers,
        timeout=timeout_seconds or settings.http_timeout_seconds,
        transport=transport,
    )


class ApifyDatasetSource(AbstractCollectionSource):
    """
    Read dataset items over HTTP.

    The client is owned by the caller when passed in; otherwise one is built
    from settings and closed by `aclose()`.
    """

    name: str = "apify"

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._owns_client = client is None
        self._client = client or build_api_client()

    async def item_count(self, collection_id: str) -> int:
        try:
            response = await self._client.get(f"/v2/datasets/{collection_id}")
        except httpx.HTTPError as exc:
            raise FetchError(
                f"Could not read dataset {collection_id}: {exc}", collection_id=collection_id
            ) from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            raise FetchError(f"Dataset {collection_id} was not found", collection_id=collection_id)
        try:
            response.raise_for_status()
            return int(response.json()["data"]["itemCount"])
        except (httpx.HTTPStatusError, KeyError, TypeError, ValueError) as exc:
            raise FetchError(
                f"Could not resolve item count of dataset {collection_id}: {exc}",
                collection_id=collection_id,
            ) from exc

    async def get_items(
        self,
        collection_id: str,
        offset: int,
        limit: int,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"offset": offset, "limit": limit, "format": "json"}
        if fields:
            params["fields"] = ",".join(fields)

        try:
            response = await self._client.get(
                f"/v2/datasets/{collection_id}/items", params=params
            )
            response.raise_for_status()
            items = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise FetchError(
                f"Could not load items of dataset {collection_id} at offset {offset}: {exc}",
                collection_id=collection_id,
                offset=offset,
            ) from exc

        if not isinstance(items, list):
            raise FetchError(
                f"Unexpected items payload for dataset {collection_id}",
                collection_id=collection_id,
                offset=offset,
            )
        return items

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["ApifyDatasetSource", "build_api_client"]
