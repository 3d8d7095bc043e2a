"""Tests for the Elasticsearch projection client."""

import httpx
import orjson
import pytest

from orderflow.core.errors import SearchError
from orderflow.core.model import Order
from orderflow.search.client import ORDER_MAPPINGS, SearchClient

BASE_URL = "http://search.test:9200"


class FakeElasticsearch:
    """Just enough of the Elasticsearch REST API for the client."""

    def __init__(self) -> None:
        self.documents: dict[str, dict] = {}
        self.indices: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "unavailable"})

        parts = request.url.path.strip("/").split("/")
        if request.method == "HEAD" and len(parts) == 1:
            return httpx.Response(200 if parts[0] in self.indices else 404)
        if request.method == "PUT" and len(parts) == 1:
            if parts[0] in self.indices:
                return httpx.Response(
                    400, json={"error": {"type": "resource_already_exists_exception"}}
                )
            self.indices[parts[0]] = orjson.loads(request.content)
            return httpx.Response(200, json={"acknowledged": True})
        if request.method == "PUT" and parts[1] == "_doc":
            result = "updated" if parts[2] in self.documents else "created"
            self.documents[parts[2]] = orjson.loads(request.content)
            return httpx.Response(201, json={"_id": parts[2], "result": result})
        if request.method == "POST" and parts[1] == "_search":
            term = orjson.loads(request.content)["query"]["match"]["product_name"]
            hits = [
                {"_id": doc_id, "_source": doc}
                for doc_id, doc in self.documents.items()
                if term.lower() in doc["product_name"].lower()
            ]
            return httpx.Response(
                200, json={"hits": {"total": {"value": len(hits)}, "hits": hits}}
            )
        if request.url.path == "/_cluster/health":
            return httpx.Response(200, json={"status": "green"})
        return httpx.Response(404)


@pytest.fixture
def engine() -> FakeElasticsearch:
    return FakeElasticsearch()


@pytest.fixture
async def client(engine: FakeElasticsearch):
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(engine.handler))
    yield SearchClient(BASE_URL, index="orders", http=http)
    await http.aclose()


class TestIndexOrder:
    """Tests for the projection upsert."""

    async def test_document_keyed_by_order_id(
        self, client: SearchClient, engine: FakeElasticsearch, order: Order
    ) -> None:
        """Orders are stored under their own id."""
        await client.index_order(order)

        request = engine.requests[-1]
        assert request.method == "PUT"
        assert request.url.path == f"/orders/_doc/{order.id}"
        assert engine.documents[order.id]["product_name"] == "Laptop"

    async def test_reindex_replaces_document(
        self, client: SearchClient, engine: FakeElasticsearch, order: Order
    ) -> None:
        """Indexing the same id twice leaves one document with the latest payload."""
        await client.index_order(order)
        await client.index_order(order.model_copy(update={"amount": 999.0}))

        assert len(engine.documents) == 1
        assert engine.documents[order.id]["amount"] == 999.0

    async def test_error_status_raises(
        self, client: SearchClient, engine: FakeElasticsearch, order: Order
    ) -> None:
        """Non-2xx responses raise SearchError with the status."""
        engine.fail_with = 503

        with pytest.raises(SearchError) as exc_info:
            await client.index_order(order)
        assert exc_info.value.status_code == 503

    async def test_transport_error_raises(self, order: Order) -> None:
        """Connection failures raise SearchError."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(refuse))
        client = SearchClient(BASE_URL, http=http)

        with pytest.raises(SearchError, match="refused"):
            await client.index_order(order)
        await http.aclose()


class TestSearchOrders:
    """Tests for the free-text query."""

    async def test_match_query_on_product_name(
        self, client: SearchClient, engine: FakeElasticsearch, order: Order
    ) -> None:
        """The term is matched against product_name and total hits are tracked."""
        await client.index_order(order)

        body = await client.search_orders("laptop")

        request = engine.requests[-1]
        assert request.url.path == "/orders/_search"
        assert request.url.params["track_total_hits"] == "true"
        assert orjson.loads(request.content) == {"query": {"match": {"product_name": "laptop"}}}
        result = orjson.loads(body)
        assert [hit["_id"] for hit in result["hits"]["hits"]] == [order.id]

    async def test_raw_body_returned(self, client: SearchClient) -> None:
        """The engine response is returned as bytes, not parsed."""
        body = await client.search_orders("nothing")

        assert isinstance(body, bytes)
        assert orjson.loads(body)["hits"]["total"]["value"] == 0

    async def test_error_raises(self, client: SearchClient, engine: FakeElasticsearch) -> None:
        engine.fail_with = 500

        with pytest.raises(SearchError):
            await client.search_orders("laptop")


class TestIndexManagement:
    """Tests for index creation and health."""

    async def test_ensure_index_creates_once(
        self, client: SearchClient, engine: FakeElasticsearch
    ) -> None:
        """The index is created with mappings the first time only."""
        assert await client.ensure_index() is True
        assert await client.ensure_index() is False
        assert engine.indices["orders"] == {"mappings": ORDER_MAPPINGS}

    async def test_health_check(self, client: SearchClient, engine: FakeElasticsearch) -> None:
        assert await client.health_check() is True

        engine.fail_with = 503
        assert await client.health_check() is False

    async def test_close_leaves_injected_client_open(self, engine: FakeElasticsearch) -> None:
        """Only clients created by SearchClient are closed by it."""
        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(engine.handler))
        await SearchClient(BASE_URL, http=http).close()

        assert not http.is_closed
        await http.aclose()
