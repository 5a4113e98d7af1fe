"""
Pydantic schemas for query execution, comparison and favorites.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """Request body for an ad-hoc query."""
    query: str = Field(..., min_length=1, description="SQL statement to execute")


class ColumnSchema(BaseModel):
    name: str
    type: str

    model_config = ConfigDict(from_attributes=True)


class QueryResultSchema(BaseModel):
    """Materialised query result."""
    columns: List[ColumnSchema] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class QueryStatsSchema(BaseModel):
    """Resource statistics of one execution."""
    query: str
    elapsed_ms: float = Field(..., description="Wall time measured by the console")
    server_elapsed_ms: float = Field(..., description="Elapsed time reported by ClickHouse")
    rows_read: int
    bytes_read: int
    memory_usage: int = Field(..., description="Peak memory usage in bytes, 0 when unknown")
    result_rows: int
    result: Optional[QueryResultSchema] = None

    model_config = ConfigDict(from_attributes=True)


class CompareRequest(BaseModel):
    """Request body for comparing two queries."""
    query1: str = Field(..., min_length=1)
    query2: str = Field(..., min_length=1)
    include_results: bool = Field(default=False, description="Return the rows of both queries")


class CompareResponse(BaseModel):
    query1_stats: QueryStatsSchema
    query2_stats: QueryStatsSchema

    model_config = ConfigDict(from_attributes=True)


class FavoriteCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    query1: str = Field(..., min_length=1)
    query2: str = Field(..., min_length=1)


class FavoriteResponse(BaseModel):
    id: int
    connection_id: int
    title: str
    query1: str
    query2: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QueryHistoryResponse(BaseModel):
    id: int
    connection_id: int
    query: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
