"""API v1 router aggregation."""

from fastapi import APIRouter

from rag_core.api.v1 import embeddings, health, vectors

router = APIRouter(
    prefix="/api/v1",
    tags=["v1"],
    responses={
        404: {"description": "Not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(health.router)
router.include_router(embeddings.router)
router.include_router(vectors.router)


@router.get("/", summary="API Information", tags=["v1"])
async def api_info():
    """Get API v1 information."""
    return {
        "version": "v1",
        "status": "active",
        "service": "rag-core",
        "endpoints": {
            "health": "/api/v1/health",
            "embeddings": "/api/v1/embeddings",
            "embedding_cache": "/api/v1/embeddings/cache",
            "vector_query": "/api/v1/vectors/query",
        },
    }
