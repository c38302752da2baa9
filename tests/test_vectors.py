"""Tests for vector validation and backoff helpers."""

import random

import pytest

from rag_core.utils.errors import EmbeddingError, ValidationError
from rag_core.utils.vectors import (
    compute_backoff_delay,
    count_non_zero,
    create_placeholder_vector,
    is_near_zero,
    validate_vector_dimension,
)


class TestValidateVectorDimension:
    def test_valid_vector(self):
        validate_vector_dimension([0.1, -0.2, 0.3], 3)

    def test_wrong_length(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_vector_dimension([0.1, 0.2], 3)
        assert exc_info.value.details == {"expected_dimension": 3, "actual_dimension": 2}

    @pytest.mark.parametrize("value", [None, "0.1,0.2", 12, {"a": 1}])
    def test_not_a_list(self, value):
        with pytest.raises(ValidationError):
            validate_vector_dimension(value, 2)

    @pytest.mark.parametrize("vector", [[0.1, "x"], [0.1, float("nan")], [0.1, float("inf")], [True, 0.1]])
    def test_non_numeric_values(self, vector):
        with pytest.raises(ValidationError):
            validate_vector_dimension(vector, 2)

    def test_all_zero_vector_is_retryable_embedding_error(self):
        with pytest.raises(EmbeddingError) as exc_info:
            validate_vector_dimension([0.0, 0.0, 0.0], 3)
        assert exc_info.value.retryable is True


class TestNearZero:
    def test_counts(self):
        assert count_non_zero([0.0, 1.0, 0.0, 2.0]) == 2

    def test_near_zero_threshold(self):
        assert is_near_zero([1.0] + [0.0] * 199) is True
        assert is_near_zero([1.0, 1.0] + [0.0] * 198) is False


class TestPlaceholderVector:
    def test_placeholder_is_small_and_non_zero(self):
        vector = create_placeholder_vector(3072)
        assert len(vector) == 3072
        assert all(0 < v < 0.001 + 1e-12 for v in vector)

    def test_placeholder_passes_validation(self):
        validate_vector_dimension(create_placeholder_vector(16, random.Random(7)), 16)


class TestBackoff:
    def test_delays_non_decreasing_and_bounded(self):
        rng = random.Random(1234)
        for _ in range(50):
            delays = [compute_backoff_delay(n, 0.5, 8.0, 0.3, rng) for n in range(1, 10)]
            assert delays == sorted(delays)
            assert all(0.5 <= d <= 8.0 for d in delays)

    def test_full_jitter_still_non_decreasing(self):
        class MaxRandom(random.Random):
            def uniform(self, a, b):
                return b

        class MinRandom(random.Random):
            def uniform(self, a, b):
                return a

        high = compute_backoff_delay(1, 1.0, 100.0, 1.0, MaxRandom())
        low = compute_backoff_delay(2, 1.0, 100.0, 1.0, MinRandom())
        assert high <= low

    def test_without_jitter_doubles(self):
        assert [compute_backoff_delay(n, 1.0, 5.0, 0.0) for n in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]

    def test_attempt_must_be_positive(self):
        with pytest.raises(ValueError):
            compute_backoff_delay(0, 1.0, 5.0)
