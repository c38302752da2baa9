"""Pytest configuration and fixtures for rag-core tests."""

from types import SimpleNamespace
from typing import Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from rag_core.config import CacheSettings, EmbeddingSettings, PineconeSettings, Settings

TEST_DIMENSION = 8
PINECONE_HOST = "https://test-index.svc.test-env.pinecone.io"


def make_vector(text: str, dimension: int = TEST_DIMENSION) -> List[float]:
    """Deterministic non-zero vector derived from the text."""
    seed = sum(ord(c) for c in text) % 97 + 1
    return [round((seed + i) / 100.0, 4) for i in range(dimension)]


def make_embedding_response(inputs, dimension: int = TEST_DIMENSION, vector_fn: Optional[Callable] = None):
    """Build an object shaped like `openai.types.CreateEmbeddingResponse`."""
    if isinstance(inputs, str):
        inputs = [inputs]
    vector_fn = vector_fn or make_vector
    return SimpleNamespace(
        data=[SimpleNamespace(index=i, embedding=vector_fn(text, dimension)) for i, text in enumerate(inputs)]
    )


def openai_status_error(error_cls, status_code: int):
    """Instantiate an openai APIStatusError subclass for a given HTTP status."""
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    response = httpx.Response(status_code, request=request)
    return error_cls(f"Error code: {status_code}", response=response, body=None)


def build_settings(**embedding_overrides) -> Settings:
    embedding = dict(
        openai_api_key="sk-test",
        embedding_dimension=TEST_DIMENSION,
        embedding_batch_size=20,
        embedding_max_retries=3,
        embedding_retry_initial_delay=1.0,
        embedding_retry_max_delay=10.0,
        embedding_batch_delay=0.0,
    )
    embedding.update(embedding_overrides)
    return Settings(
        environment="development",
        embedding=EmbeddingSettings(**embedding),
        cache=CacheSettings(enabled=True, ttl_seconds=3600, max_entries=1000, prune_fraction=0.2),
        pinecone=PineconeSettings(api_key="pc-test-key", host=PINECONE_HOST, upsert_batch_size=100),
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings with small vectors and every service configured."""
    return build_settings()


@pytest.fixture
def mock_openai_client():
    """OpenAI client double whose embeddings.create echoes deterministic vectors."""

    async def _create(model, input, dimensions=None, **kwargs):
        return make_embedding_response(input, dimensions or TEST_DIMENSION)

    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=_create)
    return client


@pytest.fixture
def mock_sleep():
    """Records backoff delays without sleeping."""
    return AsyncMock(return_value=None)
