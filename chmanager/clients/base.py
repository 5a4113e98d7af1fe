"""Remote client interface and the transient result types it returns."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from chmanager.core.context import RequestContext
from chmanager.db.models import ClickHouseConnection

# A row value as produced by the driver. The concrete numeric class of a
# column may change between server/driver versions, see services.coercion.
RowValue = Union[str, int, float, datetime, List[str], None]
Row = Dict[str, RowValue]


@dataclass
class ColumnInfo:
    """Column descriptor: name plus the server's type tag."""
    name: str
    type: str


@dataclass
class QueryResult:
    """Fully materialised result of a statement."""
    columns: List[ColumnInfo] = field(default_factory=list)
    rows: List[Row] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


@dataclass
class QueryStats:
    """Resource statistics of one execution."""
    query: str
    elapsed_ms: float = 0.0
    server_elapsed_ms: float = 0.0
    rows_read: int = 0
    bytes_read: int = 0
    memory_usage: int = 0
    result_rows: int = 0
    result: Optional[QueryResult] = None


@dataclass
class CompareResult:
    """Paired statistics of two queries run on the same connection."""
    query1_stats: QueryStats
    query2_stats: QueryStats


@dataclass
class TableMeta:
    """Table summary used by the schema browser."""
    name: str
    engine: str = ""
    total_rows: int = 0
    total_bytes: int = 0


@dataclass
class ColumnMeta:
    """One column of a table as listed in system.columns."""
    name: str
    type: str
    default_kind: str = ""
    default_expression: str = ""
    comment: str = ""
    is_in_primary_key: bool = False
    is_in_sorting_key: bool = False


@dataclass
class TableSchema:
    database: str
    table: str
    columns: List[ColumnMeta] = field(default_factory=list)


# Configuration page

SINGLE_NODE_NO_CLUSTER = "Single Node (No Cluster Configured)"
SINGLE_NODE_QUERY_FAILED = "Single Node (Query Failed)"


@dataclass
class ClusterInfo:
    """
    Server and cluster summary.

    The connection fields are always filled; the rest stays at its zero
    value when the server cannot be queried.
    """
    host: str
    port: int
    protocol: str
    database_default: str
    read_write_mode: bool = True
    cluster_name: str = ""
    shards: int = 0
    replicas: int = 0
    version: str = ""
    uptime: int = 0
    timezone: str = ""
    display_name: str = ""

    @classmethod
    def for_connection(cls, connection: ClickHouseConnection) -> "ClusterInfo":
        return cls(
            host=connection.host,
            port=connection.port,
            protocol=connection.protocol,
            database_default=connection.database,
        )


@dataclass
class ServerSetting:
    name: str
    value: str
    changed: bool = False
    description: str = ""
    type: str = ""
    readonly: int = 0


@dataclass
class ServerUser:
    name: str
    id: str = ""
    storage: str = ""
    auth_type: str = ""
    host_ip: str = ""
    default_roles: List[str] = field(default_factory=list)
    default_database: str = ""


@dataclass
class ServerRole:
    name: str
    id: str = ""
    storage: str = ""


@dataclass
class StorageVolume:
    name: str
    disks: List[str] = field(default_factory=list)
    max_data_part_size: int = 0


@dataclass
class StoragePolicy:
    name: str
    move_factor: float = 0.0
    volumes: List[StorageVolume] = field(default_factory=list)


@dataclass
class Disk:
    name: str
    path: str = ""
    free_space: int = 0
    total_space: int = 0
    keep_free_space: int = 0
    type: str = ""


@dataclass
class ProcessStats:
    """Current values of a few system.metrics gauges."""
    memory_tracking: int = 0
    queries_in_progress: int = 0
    background_merges: int = 0
    background_fetches: int = 0


@dataclass
class QueryLogConfig:
    enabled: bool = True
    flush_interval: int = 0
    size_bytes: int = 0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None


@dataclass
class ConfigurationData:
    """Everything shown on the configuration page of a connection."""
    cluster_info: ClusterInfo
    settings: List[ServerSetting] = field(default_factory=list)
    users: List[ServerUser] = field(default_factory=list)
    roles: List[ServerRole] = field(default_factory=list)
    storage_policies: List[StoragePolicy] = field(default_factory=list)
    disks: List[Disk] = field(default_factory=list)
    processes: ProcessStats = field(default_factory=ProcessStats)
    log_config: QueryLogConfig = field(default_factory=QueryLogConfig)


class RemoteClient(ABC):
    """Abstract capability to run statements against a registered connection.

    Implementations honour the deadline carried by `ctx` and raise
    RemoteExecutionError with the server's message on failure.
    """

    @abstractmethod
    def execute_with_results(
        self, ctx: RequestContext, connection: ClickHouseConnection, sql: str
    ) -> QueryResult:
        """Run `sql` and return its rows."""

    @abstractmethod
    def execute_with_stats(
        self,
        ctx: RequestContext,
        connection: ClickHouseConnection,
        sql: str,
        include_result: bool = False,
    ) -> QueryStats:
        """Run `sql` and return its resource statistics."""

    @abstractmethod
    def ping(self, ctx: RequestContext, connection: ClickHouseConnection) -> None:
        """Raise if the server cannot be reached."""

    def get_server_info(self, ctx: RequestContext, connection: ClickHouseConnection) -> str:
        result = self.execute_with_results(ctx, connection, "SELECT version() AS version")
        if not result.rows:
            return ""
        return str(result.rows[0].get("version", ""))

    def get_databases(self, ctx: RequestContext, connection: ClickHouseConnection) -> List[str]:
        result = self.execute_with_results(ctx, connection, "SELECT name FROM system.databases ORDER BY name")
        return [str(row["name"]) for row in result.rows]

    @abstractmethod
    def get_tables(
        self, ctx: RequestContext, connection: ClickHouseConnection, database: Optional[str] = None
    ) -> List[TableMeta]:
        """List the tables of `database` (the connection default when None)."""

    @abstractmethod
    def get_table_schema(
        self, ctx: RequestContext, connection: ClickHouseConnection, table: str, database: Optional[str] = None
    ) -> TableSchema:
        """Column list of a table; an unknown table has no columns."""

    @abstractmethod
    def get_create_sql(
        self, ctx: RequestContext, connection: ClickHouseConnection, table: str, database: Optional[str] = None
    ) -> str:
        """CREATE statement of a table."""

    # Configuration page. Apart from get_settings these tolerate failing
    # system table queries and return whatever could be read.

    @abstractmethod
    def get_cluster_config(self, ctx: RequestContext, connection: ClickHouseConnection) -> ClusterInfo:
        pass

    @abstractmethod
    def get_settings(self, ctx: RequestContext, connection: ClickHouseConnection) -> List[ServerSetting]:
        pass

    @abstractmethod
    def get_users(self, ctx: RequestContext, connection: ClickHouseConnection) -> List[ServerUser]:
        pass

    @abstractmethod
    def get_roles(self, ctx: RequestContext, connection: ClickHouseConnection) -> List[ServerRole]:
        pass

    @abstractmethod
    def get_storage_policies(
        self, ctx: RequestContext, connection: ClickHouseConnection
    ) -> Tuple[List[StoragePolicy], List[Disk]]:
        pass

    @abstractmethod
    def get_process_stats(self, ctx: RequestContext, connection: ClickHouseConnection) -> ProcessStats:
        pass

    @abstractmethod
    def get_log_config(self, ctx: RequestContext, connection: ClickHouseConnection) -> QueryLogConfig:
        pass


__all__ = [
    "RowValue",
    "Row",
    "ColumnInfo",
    "QueryResult",
    "QueryStats",
    "CompareResult",
    "TableMeta",
    "ColumnMeta",
    "TableSchema",
    "ClusterInfo",
    "ServerSetting",
    "ServerUser",
    "ServerRole",
    "StorageVolume",
    "StoragePolicy",
    "Disk",
    "ProcessStats",
    "QueryLogConfig",
    "ConfigurationData",
    "RemoteClient",
]
