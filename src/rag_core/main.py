"""FastAPI application entry point.

This module creates and configures the FastAPI application instance with:
- Exception handlers mapping core errors to JSON responses
- API routers (v1)
- Health check endpoint (/health)
- Startup configuration validation
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rag_core.api.v1.health import health_check
from rag_core.api.v1.router import router as v1_router
from rag_core.clients.pinecone_client import PineconeRestClient
from rag_core.config import get_settings
from rag_core.dependencies import get_vector_store_client
from rag_core.middleware import setup_middleware
from rag_core.utils.errors import ConfigurationError, RagCoreException
from rag_core.utils.logging import get_logger, log_error, setup_logging

# Set up logging first
setup_logging()
logger = get_logger("main")

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration on startup; fail fast in production."""
    logger.info("Starting RAG core service...")
    try:
        settings.validate_configuration()
    except ConfigurationError as e:
        if settings.is_production:
            logger.error(f"Configuration validation failed: {e.message}")
            raise
        logger.warning(f"Configuration incomplete (development mode): {e.message}")

    logger.info(
        f"Embedding model={settings.embedding.model}, dimension={settings.embedding.dimension}, "
        f"cache_enabled={settings.cache.enabled}"
    )
    yield
    logger.info("RAG core service shut down")


app = FastAPI(
    title="RAG Core Service",
    description="Embedding generation and vector search for the RAG dashboard",
    version="0.1.0",
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)


@app.exception_handler(RagCoreException)
async def rag_core_exception_handler(request: Request, exc: RagCoreException):
    """Handle RagCoreException."""
    log_error(exc, context={"path": request.url.path, "method": request.method})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "code": "HTTP_ERROR",
                "status_code": exc.status_code,
            }
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation error",
                "code": "VALIDATION_ERROR",
                "status_code": 422,
                "details": exc.errors(),
            }
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    log_error(exc, context={"path": request.url.path, "method": request.method})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": "Internal server error",
                "code": "INTERNAL_ERROR",
                "status_code": 500,
            }
        },
    )


setup_middleware(app)
app.include_router(v1_router)


@app.get("/health", tags=["health"], include_in_schema=False)
async def root_health_check(store: PineconeRestClient = Depends(get_vector_store_client)):
    """Root-level health check endpoint (for Kubernetes/Docker)."""
    return await health_check(store)


@app.get("/", tags=["root"])
async def root():
    return {
        "service": "rag-core",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment.value,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rag_core.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload and settings.is_development,
        log_level=settings.log_level.lower(),
    )
