"""Embedding endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field, model_validator

from rag_core.api.v1.disconnect import cancel_on_disconnect
from rag_core.dependencies import get_embedding_service
from rag_core.models.embedding import CacheStats, EmbeddingResult
from rag_core.services.embedding_service import EmbeddingService
from rag_core.utils.logging import get_logger

logger = get_logger("embeddings_api")

router = APIRouter(prefix="/embeddings", tags=["embeddings"])


class EmbeddingRequest(BaseModel):
    """Either `text` or `texts` must be set."""

    text: Optional[str] = Field(default=None, description="Single text to embed")
    texts: Optional[List[str]] = Field(default=None, description="Texts to embed as a batch")
    use_cache: bool = Field(default=True, description="Serve and store results in the cache")

    @model_validator(mode="after")
    def require_one_input(self) -> "EmbeddingRequest":
        if (self.text is None) == (self.texts is None):
            raise ValueError("Provide exactly one of 'text' or 'texts'")
        return self


class EmbeddingResponse(BaseModel):
    model: str
    dimension: int
    embedding: Optional[List[float]] = None
    cached: Optional[bool] = None
    embeddings: Optional[List[EmbeddingResult]] = None
    degraded_count: int = 0


@router.post("", response_model=EmbeddingResponse, status_code=status.HTTP_200_OK)
async def create_embeddings(
    body: EmbeddingRequest,
    request: Request,
    service: EmbeddingService = Depends(get_embedding_service),
) -> EmbeddingResponse:
    """Generate one embedding (`text`) or a batch (`texts`)."""
    async with cancel_on_disconnect(request) as cancel_event:
        if body.text is not None:
            result = await service.generate_embedding_result(
                body.text, use_cache=body.use_cache, cancel_event=cancel_event
            )
            return EmbeddingResponse(
                model=service.model,
                dimension=len(result.vector),
                embedding=result.vector,
                cached=result.cached,
            )

        results = await service.generate_embedding_results(
            body.texts, use_cache=body.use_cache, cancel_event=cancel_event
        )
        return EmbeddingResponse(
            model=service.model,
            dimension=service.dimension,
            embeddings=results,
            degraded_count=sum(1 for r in results if r.degraded),
        )


@router.get("/cache", response_model=CacheStats)
async def embedding_cache_stats(service: EmbeddingService = Depends(get_embedding_service)) -> CacheStats:
    return service.get_cache_stats()


@router.delete("/cache")
async def clear_embedding_cache(service: EmbeddingService = Depends(get_embedding_service)):
    cleared = service.clear_cache()
    logger.info(f"Embedding cache cleared via API: entries={cleared}")
    return {"cleared": cleared}
