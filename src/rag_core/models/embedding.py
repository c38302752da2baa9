"""Embedding models."""

from typing import List, Optional

from pydantic import BaseModel, Field


class EmbeddingResult(BaseModel):
    """An embedding together with how it was produced."""

    vector: List[float] = Field(..., description="Embedding vector")
    index: int = Field(default=0, description="Position of the text in the caller's input")
    degraded: bool = Field(
        default=False,
        description="True when the vector is a placeholder substituted after all retries failed",
    )
    cached: bool = Field(default=False, description="Served from the in-process cache")


class CacheEntry(BaseModel):
    """Cached embedding and the time it was stored (epoch seconds)."""

    embedding: List[float]
    timestamp: float


class CacheStats(BaseModel):
    """Snapshot of the embedding cache."""

    size: int = Field(..., ge=0, description="Number of cached embeddings")
    oldest_entry: Optional[float] = Field(default=None, description="Timestamp of the oldest entry")
    newest_entry: Optional[float] = Field(default=None, description="Timestamp of the newest entry")
    average_age: float = Field(default=0.0, ge=0, description="Mean entry age in seconds")
