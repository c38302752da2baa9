"""Tests for the shared instances and the module-level facade."""

import httpx
import pytest

from conftest import TEST_DIMENSION, build_settings, make_vector
from rag_core import dependencies
from rag_core.clients.pinecone_client import PineconeRestClient


@pytest.fixture
def settings(monkeypatch):
    settings = build_settings()
    monkeypatch.setattr(dependencies, "get_settings", lambda: settings)
    dependencies.reset_dependencies()
    yield settings
    dependencies.reset_dependencies()


def test_instances_are_shared(settings):
    service = dependencies.get_embedding_service()

    assert dependencies.get_embedding_service() is service
    assert service.cache is dependencies.get_embedding_cache()
    assert dependencies.get_vector_store_client() is dependencies.get_vector_store_client()


def test_reset_drops_instances(settings):
    service = dependencies.get_embedding_service()
    dependencies.reset_dependencies()
    assert dependencies.get_embedding_service() is not service


@pytest.mark.asyncio
async def test_embedding_facade_shares_cache(settings, mock_openai_client):
    dependencies.get_embedding_service()._client = mock_openai_client

    first = await dependencies.generate_embedding("hello")
    second = await dependencies.generate_embedding("hello")
    batch = await dependencies.generate_embeddings(["hello", "world"])

    assert first == second == make_vector("hello")
    assert batch == [make_vector("hello"), make_vector("world")]
    assert mock_openai_client.embeddings.create.await_count == 2
    assert dependencies.get_embedding_cache_stats().size == 2
    assert dependencies.clear_embedding_cache() == 2


@pytest.mark.asyncio
async def test_vector_facade(settings, monkeypatch):
    requests = []

    def handler(request):
        requests.append(request.url.path)
        if request.url.path == "/query":
            return httpx.Response(200, json={"matches": [{"id": "a", "score": 0.5}]})
        if request.url.path == "/describe_index_stats":
            return httpx.Response(200, json={"dimension": TEST_DIMENSION})
        return httpx.Response(200, json={"upsertedCount": 1})

    store = PineconeRestClient(settings=settings, transport=httpx.MockTransport(handler))
    monkeypatch.setattr(dependencies, "_vector_store_client", store)

    upserted = await dependencies.upsert_vectors([{"id": "a", "values": make_vector("a")}])
    result = await dependencies.query_vectors(make_vector("a"), top_k=1)
    deleted = await dependencies.delete_vectors(["a"])
    health = await dependencies.health_check()

    assert upserted.upserted_count == 1
    assert [m.id for m in result.matches] == ["a"]
    assert deleted.deleted_ids == ["a"]
    assert health.healthy is True
    assert requests == ["/vectors/upsert", "/query", "/vectors/delete", "/describe_index_stats"]
