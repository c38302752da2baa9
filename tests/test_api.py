"""Tests for the HTTP API."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import TEST_DIMENSION, build_settings, make_vector
from rag_core.clients.pinecone_client import PineconeRestClient
from rag_core.dependencies import get_embedding_service, get_vector_store_client
from rag_core.main import app
from rag_core.services.embedding_cache import EmbeddingCache
from rag_core.services.embedding_service import EmbeddingService
from rag_core.utils.errors import OperationCancelledError


def pinecone_reply(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/describe_index_stats":
        return httpx.Response(200, json={"dimension": TEST_DIMENSION, "totalVectorCount": 3, "namespaces": {}})
    if request.url.path == "/query":
        return httpx.Response(
            200,
            json={"matches": [{"id": "chunk_1", "score": 0.9, "metadata": {"text": "hello"}}], "namespace": ""},
        )
    return httpx.Response(404)


@pytest.fixture
def settings():
    return build_settings()


@pytest.fixture
def embedding_service(settings, mock_openai_client, mock_sleep):
    return EmbeddingService(
        settings=settings,
        cache=EmbeddingCache(ttl_seconds=3600),
        client=mock_openai_client,
        sleep=mock_sleep,
    )


@pytest.fixture
def pinecone_handler():
    return pinecone_reply


@pytest.fixture
def client(settings, embedding_service, pinecone_handler):
    store = PineconeRestClient(settings=settings, transport=httpx.MockTransport(pinecone_handler))
    app.dependency_overrides[get_embedding_service] = lambda: embedding_service
    app.dependency_overrides[get_vector_store_client] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"] == {"embeddings": True, "vector_store": True}

    def test_v1_health(self, client):
        assert client.get("/api/v1/health").status_code == 200

    @pytest.mark.parametrize("pinecone_handler", [lambda request: httpx.Response(503, text="down")])
    def test_unhealthy_vector_store_returns_503(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["checks"]["vector_store"] is False
        assert "vector_store_error" in data


class TestEmbeddingsApi:
    def test_single_embedding(self, client):
        response = client.post("/api/v1/embeddings", json={"text": "hello world"})

        assert response.status_code == 200
        data = response.json()
        assert data["embedding"] == make_vector("hello world")
        assert data["dimension"] == TEST_DIMENSION
        assert data["cached"] is False

    def test_second_request_is_cached(self, client, mock_openai_client):
        client.post("/api/v1/embeddings", json={"text": "hello world"})
        response = client.post("/api/v1/embeddings", json={"text": "hello world"})

        assert response.json()["cached"] is True
        assert mock_openai_client.embeddings.create.await_count == 1

    def test_batch_embeddings(self, client):
        response = client.post("/api/v1/embeddings", json={"texts": ["one", "two", "three"]})

        assert response.status_code == 200
        data = response.json()
        assert [e["index"] for e in data["embeddings"]] == [0, 1, 2]
        assert data["embeddings"][1]["vector"] == make_vector("two")
        assert data["degraded_count"] == 0

    def test_requires_exactly_one_input(self, client):
        response = client.post("/api/v1/embeddings", json={"text": "a", "texts": ["b"]})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_whitespace_text_rejected(self, client, mock_openai_client):
        response = client.post("/api/v1/embeddings", json={"text": "   "})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        mock_openai_client.embeddings.create.assert_not_awaited()

    def test_cache_stats_and_clear(self, client):
        client.post("/api/v1/embeddings", json={"texts": ["one", "two"]})

        stats = client.get("/api/v1/embeddings/cache").json()
        assert stats["size"] == 2

        response = client.delete("/api/v1/embeddings/cache")
        assert response.json() == {"cleared": 2}
        assert client.get("/api/v1/embeddings/cache").json()["size"] == 0


class TestVectorQueryApi:
    def test_query_by_text(self, client, mock_openai_client):
        response = client.post("/api/v1/vectors/query", json={"text": "hello", "top_k": 3})

        assert response.status_code == 200
        data = response.json()
        assert data["error"] is False
        assert data["matches"][0]["id"] == "chunk_1"
        mock_openai_client.embeddings.create.assert_awaited_once()

    def test_query_by_vector(self, client, mock_openai_client):
        response = client.post("/api/v1/vectors/query", json={"vector": make_vector("q")})

        assert response.status_code == 200
        assert response.json()["matches"][0]["score"] == 0.9
        mock_openai_client.embeddings.create.assert_not_awaited()

    @pytest.mark.parametrize("pinecone_handler", [lambda request: httpx.Response(500, text="boom")])
    def test_store_failure_degrades_to_empty_result(self, client):
        response = client.post("/api/v1/vectors/query", json={"vector": make_vector("q")})

        assert response.status_code == 200
        data = response.json()
        assert data["error"] is True
        assert data["matches"] == []

    def test_cancel_while_embedding_query_text_returns_cancelled_result(self, client):
        cancelled_service = MagicMock()
        cancelled_service.generate_embedding = AsyncMock(side_effect=OperationCancelledError())
        app.dependency_overrides[get_embedding_service] = lambda: cancelled_service

        response = client.post("/api/v1/vectors/query", json={"text": "hello", "namespace": "user-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["cancelled"] is True
        assert data["error"] is False
        assert data["matches"] == []
        assert data["namespace"] == "user-1"

    def test_wrong_dimension_rejected(self, client):
        response = client.post("/api/v1/vectors/query", json={"vector": [0.1, 0.2]})

        assert response.status_code == 422


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "rag-core"
