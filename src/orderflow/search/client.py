"""Elasticsearch projection of orders over the REST API.

Documents are stored under the order id, so indexing the same order twice
replaces the document instead of adding a second one. Search results are
returned as the raw response body for the API to pass through.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import orjson

from orderflow.config import Settings
from orderflow.core.errors import SearchError
from orderflow.core.model import Order

logger = logging.getLogger(__name__)

ORDER_MAPPINGS: dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "product_name": {"type": "text"},
        "amount": {"type": "double"},
        "created_at": {"type": "date"},
    }
}


class SearchClient:
    """Client for the orders index."""

    def __init__(
        self,
        base_url: str,
        index: str = "orders",
        http: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.index = index
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> SearchClient:
        return cls(
            settings.elasticsearch_url,
            index=settings.search_index,
            timeout=settings.search_timeout,
        )

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | bytes | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        content = orjson.dumps(body) if isinstance(body, dict) else body
        headers = {"Content-Type": "application/json"} if content is not None else None
        try:
            return await self._http.request(
                method, path, content=content, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            raise SearchError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise SearchError(
            f"{action} error [{response.status_code}]: {response.text}",
            status_code=response.status_code,
        )

    async def index_order(self, order: Order) -> None:
        """Upsert the order document under its id."""
        response = await self._request(
            "PUT", f"/{self.index}/_doc/{order.id}", body=order.to_bytes()
        )
        self._raise_for_status(response, "index")

    async def search_orders(self, term: str) -> bytes:
        """Full-text match on product_name.

        Returns:
            The raw Elasticsearch response body.
        """
        query = {"query": {"match": {"product_name": term}}}
        response = await self._request(
            "POST",
            f"/{self.index}/_search",
            body=query,
            params={"track_total_hits": "true"},
        )
        self._raise_for_status(response, "search")
        return response.content

    async def ensure_index(self) -> bool:
        """Create the index with its mappings unless it already exists.

        Returns:
            True if the index was created by this call.
        """
        response = await self._request("HEAD", f"/{self.index}")
        if response.status_code == 200:
            return False

        response = await self._request(
            "PUT", f"/{self.index}", body={"mappings": ORDER_MAPPINGS}
        )
        # Another process may have created it between the two calls
        if response.status_code == 400 and b"resource_already_exists_exception" in response.content:
            return False
        self._raise_for_status(response, "create index")
        logger.info(f"Created search index {self.index}")
        return True

    async def health_check(self) -> bool:
        try:
            response = await self._request("GET", "/_cluster/health")
        except SearchError:
            return False
        return response.is_success

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()
