"""Vector store request/response models (Pinecone REST API)."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VectorRecord(BaseModel):
    """A vector to upsert."""

    id: str = Field(..., min_length=1, description="Vector id (upserts are idempotent by id)")
    values: List[float] = Field(..., description="Embedding values")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Metadata stored with the vector")

    def to_request(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"id": self.id, "values": self.values}
        if self.metadata:
            body["metadata"] = self.metadata
        return body


class QueryMatch(BaseModel):
    """A single nearest-neighbour match."""

    model_config = ConfigDict(extra="ignore")

    id: str
    score: Optional[float] = None
    values: List[float] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QueryResult(BaseModel):
    """
    Query outcome.

    Read-path callers get `error=True` and no matches instead of an exception
    when the index is unreachable.
    """

    matches: List[QueryMatch] = Field(default_factory=list)
    namespace: str = ""
    error: bool = False
    error_message: Optional[str] = None
    cancelled: bool = False


class UpsertResult(BaseModel):
    upserted_count: int = Field(default=0, ge=0)


class DeleteResult(BaseModel):
    deleted_ids: List[str] = Field(default_factory=list)
    namespace: str = ""


class NamespaceStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vector_count: int = Field(default=0, alias="vectorCount")


class IndexStats(BaseModel):
    """Response of `describe_index_stats`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    namespaces: Dict[str, NamespaceStats] = Field(default_factory=dict)
    dimension: Optional[int] = None
    index_fullness: Optional[float] = Field(default=None, alias="indexFullness")
    total_vector_count: int = Field(default=0, alias="totalVectorCount")


class HealthStatus(BaseModel):
    healthy: bool
    error: Optional[str] = None
