"""Pinecone REST client.

Talks to the index data-plane API directly over HTTPS:

- POST /vectors/upsert
- POST /query
- POST /vectors/delete
- POST /describe_index_stats

Every vector is checked against the configured dimension before a request is
built. Reads degrade: `query` returns an empty result flagged `error=True`
instead of raising. Writes (`upsert`, `delete`) raise `VectorStoreError`.
Nothing is retried here.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from pydantic import ValidationError as PydanticValidationError

from rag_core.config import Settings, get_settings
from rag_core.models.vector import (
    DeleteResult,
    HealthStatus,
    IndexStats,
    QueryMatch,
    QueryResult,
    UpsertResult,
    VectorRecord,
)
from rag_core.utils.cancellation import run_cancellable
from rag_core.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    OperationCancelledError,
    ValidationError,
    VectorStoreError,
    is_retryable_status,
)
from rag_core.utils.logging import get_logger
from rag_core.utils.vectors import validate_vector_dimension

logger = get_logger("pinecone_client")

MAX_TOP_K = 10000
# Pinecone limits a delete request to 1000 ids
DELETE_BATCH_SIZE = 1000

VectorInput = Union[VectorRecord, Dict[str, Any]]


class PineconeRestClient:
    """
    Minimal async client for a single Pinecone index.

    Example:
        ```python
        client = PineconeRestClient()
        await client.upsert([{"id": "chunk_1", "values": vector, "metadata": {"text": "..."}}])
        result = await client.query(vector, top_k=5, filter={"user_id": {"$eq": user_id}})
        if result.error:
            ...  # no context available
        ```
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        dimension: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._config = self.settings.pinecone
        self.dimension = dimension or self.settings.embedding.dimension
        self.timeout = self._config.timeout
        self._transport = transport

        self._headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._config.api_key:
            self._headers["Api-Key"] = self._config.api_key
        if self._config.api_version:
            self._headers["X-Pinecone-API-Version"] = self._config.api_version

    @property
    def base_url(self) -> str:
        host = self._config.index_host
        if not host:
            raise ConfigurationError(
                "Pinecone index host is not configured. Set PINECONE_HOST or "
                "PINECONE_INDEX_NAME and PINECONE_ENVIRONMENT"
            )
        return host

    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def _check_credentials(self, operation: str) -> None:
        if not self._config.api_key:
            raise ConfigurationError(
                "PINECONE_API_KEY is required for vector store operations",
                details={"operation": operation},
            )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_vector(self, vector: Any, context: Optional[str] = None) -> None:
        """Dimension check; an all-zero vector is invalid for Pinecone as well."""
        try:
            validate_vector_dimension(vector, self.dimension)
        except EmbeddingError as e:
            raise ValidationError(e.message, details={"vector": context} if context else None) from e
        except ValidationError as e:
            if context:
                e.details["vector"] = context
            raise

    def _coerce_records(self, vectors: Sequence[VectorInput]) -> List[VectorRecord]:
        records: List[VectorRecord] = []
        for position, vector in enumerate(vectors):
            if isinstance(vector, VectorRecord):
                record = vector
            else:
                try:
                    record = VectorRecord.model_validate(vector)
                except PydanticValidationError as e:
                    raise ValidationError(
                        f"Invalid vector record at position {position}",
                        errors={"errors": e.errors(include_url=False)},
                    ) from e
            self._validate_vector(record.values, context=record.id)
            records.append(record)
        return records

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST `payload` and return the decoded body; raises VectorStoreError on failure."""
        url = self._build_url(path)
        logger.debug(f"POST {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=self._headers)
        except httpx.RequestError as e:
            raise VectorStoreError(
                f"Pinecone {operation} request failed: {e}",
                operation=operation,
                retryable=True,
            ) from e

        if response.status_code >= 400:
            raise VectorStoreError(
                f"Pinecone {operation} failed: {response.status_code} {response.reason_phrase} - {response.text[:500]}",
                operation=operation,
                upstream_status=response.status_code,
                retryable=is_retryable_status(response.status_code),
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise VectorStoreError(
                f"Pinecone {operation} returned an invalid JSON body",
                operation=operation,
                upstream_status=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise VectorStoreError(
                f"Pinecone {operation} returned a JSON {type(body).__name__}, expected an object",
                operation=operation,
                upstream_status=response.status_code,
            )
        return body

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def upsert(
        self,
        vectors: Sequence[VectorInput],
        namespace: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UpsertResult:
        """
        Upsert vectors, in batches of `PINECONE_UPSERT_BATCH_SIZE`.

        Raises:
            ValidationError: a record is malformed or has the wrong dimension
                (nothing is sent)
            VectorStoreError: a request failed
            OperationCancelledError: cancelled before all batches were sent
        """
        if not vectors:
            raise ValidationError("No vectors provided for upsert")
        records = self._coerce_records(vectors)
        self._check_credentials("upsert")

        batch_size = self._config.upsert_batch_size
        upserted = 0
        for start in range(0, len(records), batch_size):
            batch = records[start : start + batch_size]
            body = await run_cancellable(
                self._post(
                    "upsert",
                    "/vectors/upsert",
                    {"vectors": [r.to_request() for r in batch], "namespace": namespace},
                ),
                cancel_event,
            )
            upserted += int(body.get("upsertedCount", len(batch)))

        logger.info(f"Pinecone upsert complete: vectors={upserted}, namespace='{namespace}'")
        return UpsertResult(upserted_count=upserted)

    async def query(
        self,
        vector: Sequence[float],
        top_k: int = 5,
        include_metadata: bool = True,
        filter: Optional[Dict[str, Any]] = None,
        namespace: str = "",
        include_values: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> QueryResult:
        """
        Nearest-neighbour query. `filter` is forwarded to Pinecone untouched.

        Network failures and error responses come back as
        `QueryResult(matches=[], error=True, error_message=...)`.

        Raises:
            ValidationError: bad vector or `top_k` (nothing is sent)
        """
        self._validate_vector(vector)
        if not 1 <= top_k <= MAX_TOP_K:
            raise ValidationError(f"top_k must be between 1 and {MAX_TOP_K}", details={"top_k": top_k})

        payload: Dict[str, Any] = {
            "vector": list(vector),
            "topK": top_k,
            "includeMetadata": include_metadata,
            "includeValues": include_values,
            "namespace": namespace,
        }
        if filter:
            payload["filter"] = filter

        try:
            self._check_credentials("query")
            body = await run_cancellable(self._post("query", "/query", payload), cancel_event)
        except OperationCancelledError:
            logger.info("Pinecone query cancelled by caller")
            return QueryResult(namespace=namespace, cancelled=True)
        except (VectorStoreError, ConfigurationError) as e:
            logger.error(
                f"Pinecone query failed, returning empty result: {e.message}",
                extra={"top_k": top_k, "filter": json.dumps(filter, default=str)[:100] if filter else "none"},
            )
            return QueryResult(namespace=namespace, error=True, error_message=e.message)

        try:
            matches = [QueryMatch.model_validate(m) for m in body.get("matches") or []]
        except PydanticValidationError as e:
            logger.error(f"Pinecone query returned malformed matches: {e}")
            return QueryResult(namespace=namespace, error=True, error_message="Malformed query response")

        logger.info(f"Pinecone query successful: matches={len(matches)}, namespace='{namespace}'")
        return QueryResult(matches=matches, namespace=body.get("namespace", namespace))

    async def delete(
        self,
        ids: Sequence[str],
        namespace: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DeleteResult:
        """
        Delete vectors by id.

        Raises:
            ValidationError: no ids, or an empty id
            VectorStoreError: a request failed
        """
        if not ids:
            raise ValidationError("No ids provided for delete")
        if any(not isinstance(i, str) or not i for i in ids):
            raise ValidationError("Vector ids must be non-empty strings")
        self._check_credentials("delete")

        id_list = list(ids)
        for start in range(0, len(id_list), DELETE_BATCH_SIZE):
            await run_cancellable(
                self._post(
                    "delete",
                    "/vectors/delete",
                    {"ids": id_list[start : start + DELETE_BATCH_SIZE], "namespace": namespace},
                ),
                cancel_event,
            )

        logger.info(f"Pinecone delete complete: ids={len(id_list)}, namespace='{namespace}'")
        return DeleteResult(deleted_ids=id_list, namespace=namespace)

    async def delete_by_filter(
        self,
        filter: Dict[str, Any],
        namespace: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Delete every vector matching a metadata filter (e.g. all chunks of a document)."""
        if not filter:
            raise ValidationError("A non-empty filter is required for delete_by_filter")
        self._check_credentials("delete")
        await run_cancellable(
            self._post("delete", "/vectors/delete", {"filter": filter, "namespace": namespace}),
            cancel_event,
        )
        logger.info(f"Pinecone delete by filter complete: namespace='{namespace}'")

    async def describe_index_stats(self, filter: Optional[Dict[str, Any]] = None) -> IndexStats:
        """Index statistics, optionally restricted to vectors matching `filter`."""
        self._check_credentials("describe_index_stats")
        payload: Dict[str, Any] = {"filter": filter} if filter else {}
        body = await self._post("describe_index_stats", "/describe_index_stats", payload)
        return IndexStats.model_validate(body)

    async def health_check(self) -> HealthStatus:
        """Reachability check against the index. Never raises."""
        try:
            stats = await self.describe_index_stats()
        except (VectorStoreError, ConfigurationError) as e:
            logger.warning(f"Pinecone health check failed: {e.message}")
            return HealthStatus(healthy=False, error=e.message)
        except PydanticValidationError as e:
            logger.warning(f"Pinecone health check returned an unexpected body: {e}")
            return HealthStatus(healthy=False, error="Unexpected describe_index_stats response")

        if stats.dimension is not None and stats.dimension != self.dimension:
            message = f"Index dimension {stats.dimension} does not match embedding dimension {self.dimension}"
            logger.warning(f"Pinecone health check failed: {message}")
            return HealthStatus(healthy=False, error=message)
        return HealthStatus(healthy=True)
