"""
Pydantic schemas for the slow query report API.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SlowQueryReportSchema(BaseModel):
    """One row of the top slow queries report."""
    id: Optional[int] = Field(None, description="Row ID assigned by the local store")
    connection_id: int
    executed_by: str = Field(..., description="Initial user on the ClickHouse side")
    sample_query: str = Field(..., description="One representative raw query")
    query_normalized: str = Field(..., description="Normalized query used as the grouping key")
    executions: int = Field(..., ge=0, description="Number of executions in the window")
    avg_duration_ms: float = Field(..., description="Average duration, rounded to 2 decimals")
    p95_duration_ms: float = Field(..., description="95th percentile duration (t-digest)")
    max_duration_ms: float = Field(..., description="Maximum duration")
    total_rows_read: int = Field(..., ge=0)
    total_bytes_read: int = Field(..., ge=0)
    last_refresh: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SlowQueryReportResponse(BaseModel):
    """Response for the top slow queries report."""
    data: List[SlowQueryReportSchema]
    last_refresh: Optional[datetime] = Field(None, description="When the snapshot was built")

    model_config = ConfigDict(from_attributes=True)
