"""Shared service instances and the caller-facing API.

The embedding cache lives for the life of the process; every caller in the
process shares it through `get_embedding_service()`.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from rag_core.clients.pinecone_client import PineconeRestClient, VectorInput
from rag_core.config import get_settings
from rag_core.models.embedding import CacheStats
from rag_core.models.vector import DeleteResult, HealthStatus, QueryResult, UpsertResult
from rag_core.services.embedding_cache import EmbeddingCache
from rag_core.services.embedding_service import EmbeddingService

_embedding_cache: Optional[EmbeddingCache] = None
_embedding_service: Optional[EmbeddingService] = None
_vector_store_client: Optional[PineconeRestClient] = None


def get_embedding_cache() -> EmbeddingCache:
    global _embedding_cache
    if _embedding_cache is None:
        _embedding_cache = EmbeddingCache.from_settings(get_settings().cache)
    return _embedding_cache


def get_embedding_service() -> EmbeddingService:
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService(settings=get_settings(), cache=get_embedding_cache())
    return _embedding_service


def get_vector_store_client() -> PineconeRestClient:
    global _vector_store_client
    if _vector_store_client is None:
        _vector_store_client = PineconeRestClient(settings=get_settings())
    return _vector_store_client


def reset_dependencies() -> None:
    """Drop shared instances (tests, settings reloads)."""
    global _embedding_cache, _embedding_service, _vector_store_client
    _embedding_cache = None
    _embedding_service = None
    _vector_store_client = None


async def generate_embedding(text: Any, cancel_event: Optional[asyncio.Event] = None, **options: Any) -> List[float]:
    return await get_embedding_service().generate_embedding(text, cancel_event=cancel_event, **options)


async def generate_embeddings(
    texts: Sequence[Any], cancel_event: Optional[asyncio.Event] = None, **options: Any
) -> List[List[float]]:
    return await get_embedding_service().generate_embeddings(texts, cancel_event=cancel_event, **options)


def clear_embedding_cache() -> int:
    return get_embedding_service().clear_cache()


def get_embedding_cache_stats() -> CacheStats:
    return get_embedding_service().get_cache_stats()


async def upsert_vectors(
    vectors: Sequence[VectorInput], namespace: str = "", cancel_event: Optional[asyncio.Event] = None
) -> UpsertResult:
    return await get_vector_store_client().upsert(vectors, namespace=namespace, cancel_event=cancel_event)


async def query_vectors(
    vector: Sequence[float],
    top_k: int = 5,
    include_metadata: bool = True,
    filter: Optional[Dict[str, Any]] = None,
    namespace: str = "",
    cancel_event: Optional[asyncio.Event] = None,
) -> QueryResult:
    return await get_vector_store_client().query(
        vector,
        top_k=top_k,
        include_metadata=include_metadata,
        filter=filter,
        namespace=namespace,
        cancel_event=cancel_event,
    )


async def delete_vectors(
    ids: Sequence[str], namespace: str = "", cancel_event: Optional[asyncio.Event] = None
) -> DeleteResult:
    return await get_vector_store_client().delete(ids, namespace=namespace, cancel_event=cancel_event)


async def health_check() -> HealthStatus:
    return await get_vector_store_client().health_check()
