"""
Pydantic schemas for request/response validation.
"""
from chmanager.api.schemas.slow_query import (
    SlowQueryReportSchema,
    SlowQueryReportResponse,
)
from chmanager.api.schemas.compare import (
    QueryRequest,
    QueryResultSchema,
    QueryStatsSchema,
    CompareRequest,
    CompareResponse,
    FavoriteCreateRequest,
    FavoriteResponse,
    QueryHistoryResponse,
)
from chmanager.api.schemas.connections import (
    ConnectionCreateRequest,
    ConnectionUpdateRequest,
    ConnectionResponse,
    TableMetaSchema,
    MessageResponse,
)

from chmanager.api.schemas.configuration import (
    ConfigurationResponse,
    TableSchemaResponse,
)

__all__ = [
    # Report schemas
    "SlowQueryReportSchema",
    "SlowQueryReportResponse",
    # Query / compare schemas
    "QueryRequest",
    "QueryResultSchema",
    "QueryStatsSchema",
    "CompareRequest",
    "CompareResponse",
    "FavoriteCreateRequest",
    "FavoriteResponse",
    "QueryHistoryResponse",
    # Connection schemas
    "ConnectionCreateRequest",
    "ConnectionUpdateRequest",
    "ConnectionResponse",
    "TableMetaSchema",
    "MessageResponse",
    # Configuration schemas
    "ConfigurationResponse",
    "TableSchemaResponse",
]
