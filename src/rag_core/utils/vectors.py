"""Vector validation and helpers shared by the embedding service and the vector store client."""

import math
import random
from numbers import Real
from typing import Any, List, Optional, Sequence

from rag_core.utils.errors import EmbeddingError, ValidationError

NEAR_ZERO_THRESHOLD = 0.01

PLACEHOLDER_MIN = 0.0001
PLACEHOLDER_MAX = 0.001


def validate_vector_dimension(vector: Any, expected_dimension: int) -> None:
    """
    Validate a vector before it is cached, returned or sent to the index.

    Raises:
        ValidationError: not a sequence of finite numbers, or wrong length
        EmbeddingError: every component is zero (retryable, providers
            occasionally return these transiently; Pinecone rejects them)
    """
    if vector is None or isinstance(vector, (str, bytes)) or not isinstance(vector, Sequence):
        raise ValidationError(
            f"Invalid vector: expected a list of floats, got {type(vector).__name__}",
        )

    if len(vector) != expected_dimension:
        raise ValidationError(
            f"Vector dimension mismatch: expected {expected_dimension}, got {len(vector)}",
            details={"expected_dimension": expected_dimension, "actual_dimension": len(vector)},
        )

    for value in vector:
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            raise ValidationError("Invalid vector: contains a non-numeric or non-finite value")

    if count_non_zero(vector) == 0:
        raise EmbeddingError("Invalid vector: contains only zeros", retryable=True)


def count_non_zero(vector: Sequence[float]) -> int:
    return sum(1 for v in vector if v != 0)


def is_near_zero(vector: Sequence[float], threshold: float = NEAR_ZERO_THRESHOLD) -> bool:
    """True when fewer than `threshold` of the components are non-zero."""
    if not vector:
        return True
    return count_non_zero(vector) / len(vector) < threshold


def create_placeholder_vector(dimension: int, rng: Optional[random.Random] = None) -> List[float]:
    """Small random non-zero vector used where a real embedding could not be produced."""
    rng = rng or random
    return [rng.uniform(PLACEHOLDER_MIN, PLACEHOLDER_MAX) for _ in range(dimension)]


def compute_backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    jitter: float = 0.3,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Delay before retry number `attempt` (1-based).

    The base delay doubles per attempt and gets up to `jitter` of random
    increase; the result is clamped to `max_delay`. With jitter at most
    1.0 the sequence never decreases.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    rng = rng or random
    base = min(initial_delay * (2 ** (attempt - 1)), max_delay)
    return min(base * (1 + rng.uniform(0, jitter)), max_delay)
