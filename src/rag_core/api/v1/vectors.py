"""Vector search endpoint."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from rag_core.api.v1.disconnect import cancel_on_disconnect
from rag_core.clients.pinecone_client import MAX_TOP_K, PineconeRestClient
from rag_core.dependencies import get_embedding_service, get_vector_store_client
from rag_core.models.vector import QueryResult
from rag_core.services.embedding_service import EmbeddingService
from rag_core.utils.errors import OperationCancelledError
from rag_core.utils.logging import get_logger

logger = get_logger("vectors_api")

router = APIRouter(prefix="/vectors", tags=["vectors"])


class VectorQueryRequest(BaseModel):
    """Query by raw `vector` or by `text` (embedded first)."""

    text: Optional[str] = None
    vector: Optional[List[float]] = None
    top_k: int = Field(default=5, ge=1, le=MAX_TOP_K)
    include_metadata: bool = True
    filter: Optional[Dict[str, Any]] = None
    namespace: str = ""


@router.post("/query", response_model=QueryResult)
async def query_vectors(
    body: VectorQueryRequest,
    request: Request,
    embeddings: EmbeddingService = Depends(get_embedding_service),
    store: PineconeRestClient = Depends(get_vector_store_client),
) -> QueryResult:
    """
    Search the index.

    Vector store failures come back as an empty result with `error=true`
    so search and chat can fall back to "no context found".
    """
    async with cancel_on_disconnect(request) as cancel_event:
        vector = body.vector
        if vector is None:
            try:
                vector = await embeddings.generate_embedding(body.text, cancel_event=cancel_event)
            except OperationCancelledError:
                logger.info("Vector query cancelled while embedding the query text")
                return QueryResult(namespace=body.namespace, cancelled=True)
        return await store.query(
            vector,
            top_k=body.top_k,
            include_metadata=body.include_metadata,
            filter=body.filter,
            namespace=body.namespace,
            cancel_event=cancel_event,
        )
