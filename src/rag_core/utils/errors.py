"""Custom exception classes for the RAG core."""

from typing import Any, Dict, Optional


class RagCoreException(Exception):
    """Base exception for all RAG core errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.retryable = retryable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "retryable": self.retryable,
                "details": self.details,
            }
        }


class ValidationError(RagCoreException):
    """Bad input. Never retried."""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if errors:
            error_details["validation_errors"] = errors
        super().__init__(
            message=message,
            status_code=422,
            code="VALIDATION_ERROR",
            details=error_details,
            retryable=False,
        )


class EmbeddingError(RagCoreException):
    """
    Embedding generation failed.

    `retryable` separates transient provider trouble (rate limits, 5xx,
    network errors, zero vectors) from permanent failures (dimension
    mismatch, missing credentials, rejected input).
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: Optional[str] = None,
        retryable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="EMBEDDING_ERROR",
            details=error_details,
            retryable=retryable,
        )


# Name used by callers that think in terms of the upstream provider.
ProviderError = EmbeddingError


class VectorStoreError(RagCoreException):
    """Vector store request failed."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        operation: Optional[str] = None,
        upstream_status: Optional[int] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        if upstream_status is not None:
            error_details["upstream_status"] = upstream_status
        self.upstream_status = upstream_status
        super().__init__(
            message=message,
            status_code=502,
            code="VECTOR_STORE_ERROR",
            details=error_details,
            retryable=retryable,
        )


class ConfigurationError(RagCoreException):
    """Required configuration is missing or inconsistent."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            code="CONFIGURATION_ERROR",
            details=details,
            retryable=False,
        )


class OperationCancelledError(RagCoreException):
    """The caller cancelled the operation."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=499,
            code="CANCELLED",
            details=details,
            retryable=False,
        )


def is_retryable_status(status_code: int) -> bool:
    """Rate limits and server-side failures are worth retrying."""
    return status_code == 429 or status_code >= 500
