"""Remote database clients."""

from .base import (  # noqa: F401
    ClusterInfo,
    ColumnInfo,
    ColumnMeta,
    CompareResult,
    ConfigurationData,
    QueryResult,
    QueryStats,
    RemoteClient,
    TableMeta,
    TableSchema,
)
