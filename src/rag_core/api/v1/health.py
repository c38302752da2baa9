"""Health check endpoints."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from rag_core.clients.pinecone_client import PineconeRestClient
from rag_core.dependencies import get_vector_store_client
from rag_core.utils.logging import get_logger

logger = get_logger("health")

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(store: PineconeRestClient = Depends(get_vector_store_client)):
    """
    Health check endpoint.

    Reports whether the embedding provider is configured and whether the
    Pinecone index answers. Returns 503 when either is unavailable.
    """
    logger.debug("Health check requested")
    settings = store.settings

    vector_store = await store.health_check()
    checks = {
        "embeddings": settings.embedding.is_configured,
        "vector_store": vector_store.healthy,
    }
    content = {
        "status": "healthy" if all(checks.values()) else "unhealthy",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
        "checks": checks,
    }
    if vector_store.error:
        content["vector_store_error"] = vector_store.error

    if not all(checks.values()):
        logger.warning(f"Health check failed: {checks}")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)
    return content
