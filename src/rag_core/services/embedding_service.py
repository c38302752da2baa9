"""Embedding generation service (OpenAI) with caching, retries and batching."""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from rag_core.config import MAX_EMBEDDING_DIMENSION, Settings, get_settings
from rag_core.models.embedding import CacheStats, EmbeddingResult
from rag_core.services.embedding_cache import EmbeddingCache
from rag_core.utils.cancellation import is_cancelled, run_cancellable
from rag_core.utils.errors import (
    EmbeddingError,
    OperationCancelledError,
    RagCoreException,
    ValidationError,
    is_retryable_status,
)
from rag_core.utils.logging import get_logger
from rag_core.utils.vectors import (
    compute_backoff_delay,
    count_non_zero,
    create_placeholder_vector,
    is_near_zero,
    validate_vector_dimension,
)

logger = get_logger("embedding_service")

SleepFunc = Callable[[float], Awaitable[Any]]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RagCoreException) and exc.retryable


class EmbeddingService:
    """
    Generate embeddings with OpenAI.

    - Input is validated and trimmed, then truncated to the provider limit
    - Results are cached per (model, dimension, text)
    - Retryable failures are retried with exponential backoff and jitter
    - Batches are split into provider-sized sub-batches; a failed sub-batch
      falls back to per-text requests and anything still failing becomes a
      placeholder vector flagged as degraded
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[EmbeddingCache] = None,
        client: Any = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._config = self.settings.embedding
        self._cache_enabled = self.settings.cache.enabled
        if cache is None and self._cache_enabled:
            cache = EmbeddingCache.from_settings(self.settings.cache)
        self.cache = cache
        self._client = client  # lazy
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def dimension(self) -> int:
        return self._config.dimension

    def _get_client(self):
        """Create the OpenAI client on first use."""
        if self._client is not None:
            return self._client

        if not self._config.openai_api_key:
            raise EmbeddingError(
                "OPENAI_API_KEY is required to generate embeddings",
                model=self.model,
                retryable=False,
            )

        from openai import AsyncOpenAI

        # Retries are handled here, not by the SDK
        self._client = AsyncOpenAI(
            api_key=self._config.openai_api_key,
            base_url=self._config.openai_base_url,
            timeout=self._config.timeout,
            max_retries=0,
        )
        return self._client

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    def _prepare_text(self, text: Any) -> str:
        """Validate, trim and truncate input text."""
        if text is None or not isinstance(text, str):
            raise ValidationError(
                f"Cannot generate embedding: expected a string, got {type(text).__name__}",
            )

        normalized = text.strip()
        if not normalized:
            raise ValidationError("Cannot generate embedding for empty or whitespace-only text")

        if len(normalized) < self._config.embedding_min_text_length:
            raise ValidationError(
                "Text is too short for meaningful embedding generation",
                details={
                    "length": len(normalized),
                    "min_length": self._config.embedding_min_text_length,
                },
            )

        max_length = self._config.embedding_max_text_length
        if len(normalized) > max_length:
            logger.debug(f"Truncating text for embedding: length={len(normalized)}, max_length={max_length}")
            normalized = normalized[:max_length]
        return normalized

    def _resolve_model(self, model: Optional[str], dimension: Optional[int]) -> Tuple[str, int]:
        resolved_dimension = dimension if dimension is not None else self.dimension
        if not 1 <= resolved_dimension <= MAX_EMBEDDING_DIMENSION:
            raise ValidationError(
                f"Embedding dimension must be between 1 and {MAX_EMBEDDING_DIMENSION}",
                details={"dimension": resolved_dimension},
            )
        return model or self.model, resolved_dimension

    def _use_cache(self, use_cache: bool) -> bool:
        return use_cache and self._cache_enabled and self.cache is not None

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    def _classify_provider_error(self, exc: Exception, model: str) -> EmbeddingError:
        import openai

        if isinstance(exc, openai.APIStatusError):
            status_code = exc.status_code
            return EmbeddingError(
                f"Embedding request failed with status {status_code}: {exc.message}",
                model=model,
                retryable=is_retryable_status(status_code),
                details={"status_code": status_code},
            )
        if isinstance(exc, openai.APIConnectionError):
            # Also covers timeouts
            return EmbeddingError(f"Embedding request could not reach provider: {exc}", model=model, retryable=True)
        return EmbeddingError(f"Embedding request failed: {exc}", model=model, retryable=False)

    async def _request_embeddings(self, inputs: List[str], model: str, dimension: int) -> List[List[float]]:
        """One provider request. Returned vectors are aligned with `inputs`."""
        client = self._get_client()
        try:
            resp = await client.embeddings.create(model=model, input=inputs, dimensions=dimension)
        except Exception as e:
            raise self._classify_provider_error(e, model) from e

        data = list(getattr(resp, "data", None) or [])
        if len(data) != len(inputs):
            raise EmbeddingError(
                "Embedding response size mismatch",
                model=model,
                details={"expected": len(inputs), "got": len(data)},
            )

        # Providers may return items out of order; place them by index
        vectors: List[Optional[List[float]]] = [None] * len(inputs)
        for position, item in enumerate(data):
            index = getattr(item, "index", position)
            if not 0 <= index < len(inputs) or vectors[index] is not None:
                raise EmbeddingError(
                    "Embedding response has an invalid or duplicate index",
                    model=model,
                    details={"index": index},
                )
            vectors[index] = list(item.embedding)

        for vector in vectors:
            self._validate_embedding(vector, model, dimension)
        return vectors  # type: ignore[return-value]

    def _validate_embedding(self, vector: List[float], model: str, dimension: int) -> None:
        try:
            validate_vector_dimension(vector, dimension)
        except ValidationError as e:
            raise EmbeddingError(e.message, model=model, retryable=False, details=e.details) from e
        except EmbeddingError as e:
            e.details.setdefault("model", model)
            raise

        if is_near_zero(vector):
            logger.warning(
                f"Embedding is nearly all zeros: non_zero={count_non_zero(vector)}, dimension={len(vector)}, model={model}"
            )

    def _backoff_wait(self, retry_state: RetryCallState) -> float:
        return compute_backoff_delay(
            retry_state.attempt_number,
            initial_delay=self._config.embedding_retry_initial_delay,
            max_delay=self._config.embedding_retry_max_delay,
            jitter=self._config.embedding_retry_jitter,
            rng=self._rng,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Embedding request failed (attempt {retry_state.attempt_number}/{self._config.max_retries}), "
            f"retrying in {delay:.2f}s: {exc}"
        )

    async def _embed_with_retry(
        self,
        inputs: List[str],
        model: str,
        dimension: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[List[float]]:
        """Embed `inputs` in one request, retrying retryable failures."""

        async def _sleep(delay: float) -> None:
            await run_cancellable(self._sleep(delay), cancel_event)

        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._config.max_retries),
            wait=self._backoff_wait,
            retry=retry_if_exception(_is_retryable),
            sleep=_sleep,
            before_sleep=self._log_retry,
        ):
            with attempt:
                return await run_cancellable(self._request_embeddings(inputs, model, dimension), cancel_event)
        # unreachable with reraise=True
        raise EmbeddingError("Embedding retries exhausted", model=model)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_embedding_result(
        self,
        text: Any,
        *,
        use_cache: bool = True,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EmbeddingResult:
        """
        Generate an embedding for a single text.

        Raises:
            ValidationError: invalid input (no network call is made)
            EmbeddingError: provider failure after retries, or a permanent failure
            OperationCancelledError: `cancel_event` was set
        """
        normalized = self._prepare_text(text)
        model, dimension = self._resolve_model(model, dimension)
        if is_cancelled(cancel_event):
            raise OperationCancelledError()

        caching = self._use_cache(use_cache)
        key = EmbeddingCache.make_key(normalized, model, dimension) if caching else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Embedding cache hit: text_length={len(normalized)}, model={model}")
                return EmbeddingResult(vector=cached, cached=True)

        start = time.monotonic()
        vector = (await self._embed_with_retry([normalized], model, dimension, cancel_event))[0]
        if key is not None:
            self.cache.set(key, vector)

        logger.info(
            f"Embedding generated: model={model}, dimension={len(vector)}, "
            f"text_length={len(normalized)}, duration_ms={(time.monotonic() - start) * 1000:.0f}"
        )
        return EmbeddingResult(vector=vector)

    async def generate_embedding(
        self,
        text: Any,
        *,
        use_cache: bool = True,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[float]:
        """Generate an embedding vector for a single text."""
        result = await self.generate_embedding_result(
            text, use_cache=use_cache, model=model, dimension=dimension, cancel_event=cancel_event
        )
        return result.vector

    async def _embed_sub_batch(
        self,
        batch: List[str],
        model: str,
        dimension: int,
        use_cache: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> Dict[str, Optional[List[float]]]:
        """Embed one sub-batch; texts that cannot be embedded map to None."""
        if len(batch) == 1:
            return {batch[0]: await self._embed_individually(batch[0], model, dimension, use_cache, cancel_event)}

        try:
            vectors = await self._embed_with_retry(batch, model, dimension, cancel_event)
        except OperationCancelledError:
            raise
        except RagCoreException as e:
            logger.warning(
                f"Embedding sub-batch failed, falling back to individual requests: size={len(batch)}, error={e.message}"
            )
            out: Dict[str, Optional[List[float]]] = {}
            for text in batch:
                out[text] = await self._embed_individually(text, model, dimension, use_cache, cancel_event)
            return out

        if self._use_cache(use_cache):
            for text, vector in zip(batch, vectors):
                self.cache.set(EmbeddingCache.make_key(text, model, dimension), vector)
        return dict(zip(batch, vectors))

    async def _embed_individually(
        self,
        text: str,
        model: str,
        dimension: int,
        use_cache: bool,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[List[float]]:
        try:
            result = await self.generate_embedding_result(
                text, use_cache=use_cache, model=model, dimension=dimension, cancel_event=cancel_event
            )
        except OperationCancelledError:
            raise
        except RagCoreException as e:
            logger.error(f"Embedding failed for text (length={len(text)}): {e.message}")
            return None
        return result.vector

    async def generate_embedding_results(
        self,
        texts: Sequence[Any],
        *,
        use_cache: bool = True,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[EmbeddingResult]:
        """
        Generate embeddings for many texts.

        Invalid entries are skipped with a warning. The result holds one
        entry per valid input, in input order, each tagged with its original
        `index`. Entries that could not be embedded carry a placeholder
        vector with `degraded=True`. When `cancel_event` fires, the results
        produced so far (an in-order prefix) are returned.

        Raises:
            ValidationError: `texts` is empty, or none of its entries are valid
        """
        if texts is None or isinstance(texts, (str, bytes)) or not isinstance(texts, Sequence):
            raise ValidationError("Texts must be a list of strings")
        if len(texts) == 0:
            raise ValidationError("No texts provided for embedding generation")

        model, dimension = self._resolve_model(model, dimension)

        valid: List[Tuple[int, str]] = []
        for index, text in enumerate(texts):
            try:
                valid.append((index, self._prepare_text(text)))
            except ValidationError as e:
                logger.warning(f"Skipping invalid text at index {index}: {e.message}")
        if not valid:
            raise ValidationError(
                "No valid texts provided for embedding generation",
                details={"received": len(texts)},
            )

        start = time.monotonic()
        results: Dict[int, EmbeddingResult] = {}
        caching = self._use_cache(use_cache)

        # Cache first, then group the remaining positions by text so repeats are sent once
        pending: Dict[str, List[int]] = {}
        for position, (index, text) in enumerate(valid):
            if caching:
                cached = self.cache.get(EmbeddingCache.make_key(text, model, dimension))
                if cached is not None:
                    results[position] = EmbeddingResult(vector=cached, index=index, cached=True)
                    continue
            pending.setdefault(text, []).append(position)

        unique_texts = list(pending)
        batch_size = max(1, self._config.batch_size)
        batches = [unique_texts[i : i + batch_size] for i in range(0, len(unique_texts), batch_size)]

        logger.info(
            f"Generating embeddings: model={model}, texts={len(texts)}, valid={len(valid)}, "
            f"cached={len(results)}, to_embed={len(unique_texts)}, batches={len(batches)}"
        )

        cancelled = False
        for batch_number, batch in enumerate(batches):
            try:
                if batch_number > 0 and self._config.embedding_batch_delay > 0:
                    await run_cancellable(self._sleep(self._config.embedding_batch_delay), cancel_event)
                if is_cancelled(cancel_event):
                    raise OperationCancelledError()
                embedded = await self._embed_sub_batch(batch, model, dimension, use_cache, cancel_event)
            except OperationCancelledError:
                cancelled = True
                break

            for text, vector in embedded.items():
                if vector is None:
                    continue
                for position in pending[text]:
                    results[position] = EmbeddingResult(vector=vector, index=valid[position][0])

        if cancelled:
            prefix: List[EmbeddingResult] = []
            for position in range(len(valid)):
                if position not in results:
                    break
                prefix.append(results[position])
            logger.info(f"Embedding batch cancelled: returned={len(prefix)}/{len(valid)}")
            return prefix

        degraded = 0
        ordered: List[EmbeddingResult] = []
        for position, (index, _) in enumerate(valid):
            result = results.get(position)
            if result is None:
                degraded += 1
                result = EmbeddingResult(
                    vector=create_placeholder_vector(dimension, self._rng),
                    index=index,
                    degraded=True,
                )
            ordered.append(result)

        if degraded:
            logger.error(
                f"Substituted placeholder vectors for {degraded}/{len(valid)} texts after embedding failures",
                extra={"degraded_count": degraded, "model": model},
            )
        logger.info(
            f"Embeddings generated: count={len(ordered)}, degraded={degraded}, "
            f"duration_ms={(time.monotonic() - start) * 1000:.0f}"
        )
        return ordered

    async def generate_embeddings(
        self,
        texts: Sequence[Any],
        *,
        use_cache: bool = True,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[List[float]]:
        """Generate embedding vectors for many texts (see `generate_embedding_results`)."""
        results = await self.generate_embedding_results(
            texts, use_cache=use_cache, model=model, dimension=dimension, cancel_event=cancel_event
        )
        return [r.vector for r in results]

    def clear_cache(self) -> int:
        """Empty the embedding cache and return the number of removed entries."""
        if self.cache is None:
            return 0
        return self.cache.clear()

    def get_cache_stats(self) -> CacheStats:
        if self.cache is None:
            return CacheStats(size=0)
        return self.cache.stats()
