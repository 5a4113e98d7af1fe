"""
ClickHouse HTTP client.

Talks to the ClickHouse HTTP interface (port 8123/8443) with httpx. Results
are requested in the JSON output format, which carries the column types in
`meta`, the rows in `data` and the read statistics in `statistics`. The
`X-ClickHouse-Summary` response header adds the peak memory usage.
"""
import json
import re
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from chmanager.clients.base import (
    SINGLE_NODE_NO_CLUSTER,
    SINGLE_NODE_QUERY_FAILED,
    ClusterInfo,
    ColumnInfo,
    ColumnMeta,
    Disk,
    ProcessStats,
    QueryLogConfig,
    QueryResult,
    QueryStats,
    RemoteClient,
    Row,
    RowValue,
    ServerRole,
    ServerSetting,
    ServerUser,
    StoragePolicy,
    StorageVolume,
    TableMeta,
    TableSchema,
)
from chmanager.core.config import settings
from chmanager.core.context import RequestContext
from chmanager.core.errors import DeadlineExceeded, RemoteExecutionError
from chmanager.core.logger import get_logger
from chmanager.db.models import ClickHouseConnection
from chmanager.services.coercion import to_float64, to_string, to_string_list, to_uint64

logger = get_logger(__name__)

_WRAPPER_TYPE = re.compile(r"^(?:Nullable|LowCardinality)\((.*)\)$")

TABLES_QUERY = (
    "SELECT name, engine, total_rows, total_bytes "
    "FROM system.tables WHERE database = {database:String} ORDER BY name"
)

COLUMNS_QUERY = (
    "SELECT name, type, default_kind, default_expression, comment, is_in_primary_key, is_in_sorting_key "
    "FROM system.columns WHERE database = {database:String} AND table = {table:String} ORDER BY position"
)

CREATE_SQL_QUERY = (
    "SELECT create_table_query FROM system.tables "
    "WHERE database = {database:String} AND name = {table:String}"
)

SERVER_INFO_QUERY = "SELECT version() AS version, uptime() AS uptime, timezone() AS timezone, displayName() AS display_name"
# displayName() is missing on old servers
SERVER_INFO_FALLBACK_QUERY = "SELECT version() AS version, uptime() AS uptime, timezone() AS timezone"

CLUSTERS_QUERY = (
    "SELECT cluster, countDistinct(shard_num) AS shards, countDistinct(replica_num) AS replicas "
    "FROM system.clusters GROUP BY cluster LIMIT 1"
)

SETTINGS_QUERY = "SELECT name, value, changed, description, type, readonly FROM system.settings ORDER BY name"

USERS_QUERY = (
    "SELECT name, id, storage, auth_type, host_ip, default_roles_list, default_database "
    "FROM system.users ORDER BY name"
)

ROLES_QUERY = "SELECT name, id, storage FROM system.roles ORDER BY name"

STORAGE_POLICIES_QUERY = (
    "SELECT policy_name, volume_name, disks, max_data_part_size, move_factor "
    "FROM system.storage_policies ORDER BY policy_name, volume_priority"
)

DISKS_QUERY = "SELECT name, path, free_space, total_space, keep_free_space, type FROM system.disks ORDER BY name"

METRICS_QUERY = (
    "SELECT metric, value FROM system.metrics "
    "WHERE metric IN ('Query', 'BackgroundMerges', 'BackgroundFetches', 'MemoryTracking')"
)

SETTING_VALUE_QUERY = "SELECT value FROM system.settings WHERE name = {name:String}"

QUERY_LOG_PARTS_QUERY = (
    "SELECT sum(bytes_on_disk) AS size_bytes, min(min_time) AS oldest, max(max_time) AS newest "
    "FROM system.parts WHERE database = 'system' AND table = 'query_log' AND active"
)


def strip_statement(sql: str) -> str:
    """Trim whitespace and trailing semicolons, which the HTTP interface rejects."""
    return sql.strip().rstrip(";").strip()


def base_type(type_name: str) -> str:
    """Remove Nullable(...) and LowCardinality(...) wrappers from a type tag."""
    match = _WRAPPER_TYPE.match(type_name)
    while match:
        type_name = match.group(1)
        match = _WRAPPER_TYPE.match(type_name)
    return type_name


def decode_value(type_name: str, value: Any) -> RowValue:
    """Turn a JSON cell into a row value; DateTime cells become datetimes."""
    if isinstance(value, str) and base_type(type_name).startswith("DateTime"):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


class ClickHouseHTTPClient(RemoteClient):
    """
    RemoteClient over the ClickHouse HTTP interface.

    One httpx.Client (and its connection pool) is shared by all requests.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        verify_ssl: Optional[bool] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            timeout: HTTP timeout in seconds used when the request carries no deadline
            verify_ssl: Verify TLS certificates for https connections
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout if timeout is not None else settings.clickhouse_timeout
        self.verify_ssl = verify_ssl if verify_ssl is not None else settings.clickhouse_verify_ssl
        self._client = httpx.Client(transport=transport, verify=self.verify_ssl)

    def close(self) -> None:
        self._client.close()

    def _timeout_for(self, ctx: RequestContext) -> float:
        remaining = ctx.remaining()
        if remaining is None:
            return self.timeout
        return min(remaining, self.timeout)

    def _headers(self, connection: ClickHouseConnection) -> Dict[str, str]:
        return {
            "X-ClickHouse-User": connection.username or "default",
            "X-ClickHouse-Key": connection.password or "",
            "Content-Type": "text/plain; charset=utf-8",
        }

    def _send(
        self,
        ctx: RequestContext,
        operation: str,
        connection: ClickHouseConnection,
        method: str,
        path: str,
        **kwargs,
    ) -> httpx.Response:
        """Send one request, translating transport failures into console errors."""
        ctx.check_deadline(operation)
        url = f"{connection.base_url()}{path}"

        try:
            response = self._client.request(
                method,
                url,
                headers=self._headers(connection),
                timeout=self._timeout_for(ctx),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            if ctx.expired():
                raise DeadlineExceeded(operation, f"deadline exceeded waiting for {connection.host}") from e
            logger.warning(f"{operation}: timeout talking to {connection.host}: {e}")
            raise RemoteExecutionError(operation, f"timeout talking to {connection.host}: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"{operation}: request to {connection.host} failed: {e}")
            raise RemoteExecutionError(operation, f"request to {connection.host} failed: {e}") from e

        if response.status_code >= 400:
            remote_message = response.text.strip()
            logger.warning(f"{operation}: HTTP {response.status_code} from {connection.host}: {remote_message}")
            raise RemoteExecutionError(
                operation,
                f"HTTP {response.status_code}: {remote_message}",
                remote_message=remote_message,
            )

        return response

    def _run(
        self,
        ctx: RequestContext,
        operation: str,
        connection: ClickHouseConnection,
        sql: str,
        parameters: Optional[Dict[str, str]] = None,
    ) -> Tuple[Dict[str, Any], Dict[str, Any], float]:
        """
        Execute a statement in the JSON output format.

        Returns:
            Tuple of (JSON payload, X-ClickHouse-Summary, wall time in ms)
        """
        params = {
            "database": connection.database or "default",
            "default_format": "JSON",
            "output_format_json_quote_64bit_integers": "0",
            "wait_end_of_query": "1",
        }
        for name, value in (parameters or {}).items():
            params[f"param_{name}"] = value

        start = time.perf_counter()
        response = self._send(
            ctx, operation, connection, "POST", "/",
            params=params,
            content=strip_statement(sql).encode("utf-8"),
        )
        elapsed_ms = (time.perf_counter() - start) * 1000

        payload: Dict[str, Any] = {}
        if response.content.strip():
            try:
                payload = response.json()
            except ValueError as e:
                raise RemoteExecutionError(operation, f"unexpected response from {connection.host}: {e}") from e

        summary: Dict[str, Any] = {}
        raw_summary = response.headers.get("X-ClickHouse-Summary")
        if raw_summary:
            try:
                summary = json.loads(raw_summary)
            except ValueError:
                logger.debug(f"Ignoring malformed X-ClickHouse-Summary: {raw_summary}")

        return payload, summary, elapsed_ms

    @staticmethod
    def _to_result(payload: Dict[str, Any]) -> QueryResult:
        columns = [ColumnInfo(name=m.get("name", ""), type=m.get("type", "")) for m in payload.get("meta", [])]
        types = {c.name: c.type for c in columns}

        rows: List[Row] = []
        for data_row in payload.get("data", []):
            rows.append({name: decode_value(types.get(name, ""), value) for name, value in data_row.items()})

        return QueryResult(columns=columns, rows=rows)

    def execute_with_results(
        self, ctx: RequestContext, connection: ClickHouseConnection, sql: str
    ) -> QueryResult:
        payload, _, elapsed_ms = self._run(ctx, "ClickHouseClient.execute_with_results", connection, sql)
        result = self._to_result(payload)
        logger.debug(f"Query on {connection.host} returned {result.row_count} rows in {elapsed_ms:.1f}ms")
        return result

    def execute_with_stats(
        self,
        ctx: RequestContext,
        connection: ClickHouseConnection,
        sql: str,
        include_result: bool = False,
    ) -> QueryStats:
        payload, summary, elapsed_ms = self._run(ctx, "ClickHouseClient.execute_with_stats", connection, sql)
        statistics = payload.get("statistics", {})

        # statistics is absent for statements without output; fall back to the summary header
        stats = QueryStats(
            query=sql,
            elapsed_ms=round(elapsed_ms, 3),
            server_elapsed_ms=float(statistics.get("elapsed", 0.0)) * 1000,
            rows_read=to_uint64(statistics.get("rows_read", _int_or_none(summary.get("read_rows")))),
            bytes_read=to_uint64(statistics.get("bytes_read", _int_or_none(summary.get("read_bytes")))),
            memory_usage=to_uint64(_int_or_none(summary.get("memory_usage"))),
            result_rows=to_uint64(payload.get("rows", _int_or_none(summary.get("result_rows")))),
        )
        if include_result:
            stats.result = self._to_result(payload)
        return stats

    def ping(self, ctx: RequestContext, connection: ClickHouseConnection) -> None:
        self._send(ctx, "ClickHouseClient.ping", connection, "GET", "/ping")

    def get_tables(
        self, ctx: RequestContext, connection: ClickHouseConnection, database: Optional[str] = None
    ) -> List[TableMeta]:
        payload, _, _ = self._run(
            ctx,
            "ClickHouseClient.get_tables",
            connection,
            TABLES_QUERY,
            parameters={"database": database or connection.database or "default"},
        )
        return [
            TableMeta(
                name=to_string(row.get("name")),
                engine=to_string(row.get("engine")),
                total_rows=to_uint64(row.get("total_rows")),
                total_bytes=to_uint64(row.get("total_bytes")),
            )
            for row in self._to_result(payload).rows
        ]

    def _rows(
        self,
        ctx: RequestContext,
        operation: str,
        connection: ClickHouseConnection,
        sql: str,
        parameters: Optional[Dict[str, str]] = None,
    ) -> List[Row]:
        payload, _, _ = self._run(ctx, operation, connection, sql, parameters=parameters)
        return self._to_result(payload).rows

    def _optional_rows(
        self,
        ctx: RequestContext,
        operation: str,
        connection: ClickHouseConnection,
        sql: str,
        parameters: Optional[Dict[str, str]] = None,
    ) -> Optional[List[Row]]:
        """Like `_rows`, but a failed query gives None. Deadlines still raise."""
        try:
            return self._rows(ctx, operation, connection, sql, parameters)
        except RemoteExecutionError as e:
            logger.info(f"{operation}: skipped, {e.message}")
            return None

    # -------------------------------------------------------------------------
    # Table schema
    # -------------------------------------------------------------------------

    @staticmethod
    def _table_parameters(connection: ClickHouseConnection, table: str, database: Optional[str]) -> Dict[str, str]:
        return {"database": database or connection.database or "default", "table": table}

    def get_table_schema(
        self, ctx: RequestContext, connection: ClickHouseConnection, table: str, database: Optional[str] = None
    ) -> TableSchema:
        parameters = self._table_parameters(connection, table, database)
        rows = self._rows(ctx, "ClickHouseClient.get_table_schema", connection, COLUMNS_QUERY, parameters)
        columns = [
            ColumnMeta(
                name=to_string(row.get("name")),
                type=to_string(row.get("type")),
                default_kind=to_string(row.get("default_kind")),
                default_expression=to_string(row.get("default_expression")),
                comment=to_string(row.get("comment")),
                is_in_primary_key=to_uint64(row.get("is_in_primary_key")) == 1,
                is_in_sorting_key=to_uint64(row.get("is_in_sorting_key")) == 1,
            )
            for row in rows
        ]
        return TableSchema(database=parameters["database"], table=table, columns=columns)

    def get_create_sql(
        self, ctx: RequestContext, connection: ClickHouseConnection, table: str, database: Optional[str] = None
    ) -> str:
        operation = "ClickHouseClient.get_create_sql"
        parameters = self._table_parameters(connection, table, database)
        rows = self._rows(ctx, operation, connection, CREATE_SQL_QUERY, parameters)
        if not rows:
            raise RemoteExecutionError(operation, f"table {parameters['database']}.{table} not found")
        return to_string(rows[0].get("create_table_query"))

    # -------------------------------------------------------------------------
    # Configuration page
    # -------------------------------------------------------------------------

    def get_cluster_config(self, ctx: RequestContext, connection: ClickHouseConnection) -> ClusterInfo:
        """
        Server and cluster summary.

        Never fails on a remote error: the connection fields are always
        returned and whatever the server answered is added to them.
        """
        operation = "ClickHouseClient.get_cluster_config"
        info = ClusterInfo.for_connection(connection)

        rows = self._optional_rows(ctx, operation, connection, SERVER_INFO_QUERY)
        if rows is None:
            rows = self._optional_rows(ctx, operation, connection, SERVER_INFO_FALLBACK_QUERY)
            if rows:
                rows[0]["display_name"] = "ClickHouse Server"
        if rows:
            row = rows[0]
            info.version = to_string(row.get("version"))
            info.uptime = to_uint64(row.get("uptime"))
            info.timezone = to_string(row.get("timezone"))
            info.display_name = to_string(row.get("display_name"))

        rows = self._optional_rows(ctx, operation, connection, CLUSTERS_QUERY)
        if rows:
            info.cluster_name = to_string(rows[0].get("cluster"))
            info.shards = to_uint64(rows[0].get("shards"))
            info.replicas = to_uint64(rows[0].get("replicas"))
        else:
            info.cluster_name = SINGLE_NODE_QUERY_FAILED if rows is None else SINGLE_NODE_NO_CLUSTER
            info.shards = 1
            info.replicas = 1

        return info

    def get_settings(self, ctx: RequestContext, connection: ClickHouseConnection) -> List[ServerSetting]:
        rows = self._rows(ctx, "ClickHouseClient.get_settings", connection, SETTINGS_QUERY)
        return [
            ServerSetting(
                name=to_string(row.get("name")),
                value=to_string(row.get("value")),
                changed=to_uint64(row.get("changed")) == 1,
                description=to_string(row.get("description")),
                type=to_string(row.get("type")),
                readonly=to_uint64(row.get("readonly")),
            )
            for row in rows
        ]

    def get_users(self, ctx: RequestContext, connection: ClickHouseConnection) -> List[ServerUser]:
        """Users from system.users; empty when the table cannot be read."""
        rows = self._optional_rows(ctx, "ClickHouseClient.get_users", connection, USERS_QUERY) or []
        return [
            ServerUser(
                name=to_string(row.get("name")),
                id=to_string(row.get("id")),
                storage=to_string(row.get("storage")),
                auth_type=_joined(row.get("auth_type")),
                host_ip=_joined(row.get("host_ip")),
                default_roles=to_string_list(row.get("default_roles_list")),
                default_database=to_string(row.get("default_database")),
            )
            for row in rows
        ]

    def get_roles(self, ctx: RequestContext, connection: ClickHouseConnection) -> List[ServerRole]:
        rows = self._optional_rows(ctx, "ClickHouseClient.get_roles", connection, ROLES_QUERY) or []
        return [
            ServerRole(
                name=to_string(row.get("name")),
                id=to_string(row.get("id")),
                storage=to_string(row.get("storage")),
            )
            for row in rows
        ]

    def get_storage_policies(
        self, ctx: RequestContext, connection: ClickHouseConnection
    ) -> Tuple[List[StoragePolicy], List[Disk]]:
        """Storage policies (one entry per policy, volumes in priority order) and disks."""
        operation = "ClickHouseClient.get_storage_policies"

        policies: Dict[str, StoragePolicy] = {}
        for row in self._optional_rows(ctx, operation, connection, STORAGE_POLICIES_QUERY) or []:
            name = to_string(row.get("policy_name"))
            policy = policies.setdefault(
                name, StoragePolicy(name=name, move_factor=to_float64(row.get("move_factor")))
            )
            policy.volumes.append(StorageVolume(
                name=to_string(row.get("volume_name")),
                disks=to_string_list(row.get("disks")),
                max_data_part_size=to_uint64(row.get("max_data_part_size")),
            ))

        disks = [
            Disk(
                name=to_string(row.get("name")),
                path=to_string(row.get("path")),
                free_space=to_uint64(row.get("free_space")),
                total_space=to_uint64(row.get("total_space")),
                keep_free_space=to_uint64(row.get("keep_free_space")),
                type=to_string(row.get("type")),
            )
            for row in self._optional_rows(ctx, operation, connection, DISKS_QUERY) or []
        ]

        return list(policies.values()), disks

    def get_process_stats(self, ctx: RequestContext, connection: ClickHouseConnection) -> ProcessStats:
        stats = ProcessStats()
        rows = self._optional_rows(ctx, "ClickHouseClient.get_process_stats", connection, METRICS_QUERY) or []
        for row in rows:
            metric = to_string(row.get("metric"))
            value = to_uint64(row.get("value"))
            if metric == "Query":
                stats.queries_in_progress = value
            elif metric == "BackgroundMerges":
                stats.background_merges = value
            elif metric == "BackgroundFetches":
                stats.background_fetches = value
            elif metric == "MemoryTracking":
                stats.memory_tracking = value
        return stats

    def get_log_config(self, ctx: RequestContext, connection: ClickHouseConnection) -> QueryLogConfig:
        """
        Query log status.

        `enabled` comes from the log_queries setting and stays True when it
        cannot be read. Size and time range come from the active parts of
        system.query_log.
        """
        operation = "ClickHouseClient.get_log_config"
        config = QueryLogConfig()

        rows = self._optional_rows(
            ctx, operation, connection, SETTING_VALUE_QUERY, {"name": "log_queries"}
        )
        if rows:
            config.enabled = to_string(rows[0].get("value")) == "1"

        rows = self._optional_rows(
            ctx, operation, connection, SETTING_VALUE_QUERY, {"name": "log_queries_min_interval_ms"}
        )
        if rows:
            config.flush_interval = to_uint64(_int_or_none(rows[0].get("value")))

        rows = self._optional_rows(ctx, operation, connection, QUERY_LOG_PARTS_QUERY)
        if rows:
            config.size_bytes = to_uint64(rows[0].get("size_bytes"))
            config.oldest = _part_time(rows[0].get("oldest"))
            config.newest = _part_time(rows[0].get("newest"))

        return config


def _joined(value: Any) -> str:
    """String cell, or Array(String) cell joined with commas."""
    if isinstance(value, list):
        return ", ".join(to_string_list(value))
    return to_string(value)


def _part_time(value: Any) -> Optional[datetime]:
    # min()/max() over no parts give the epoch
    if isinstance(value, datetime) and value.year > 1970:
        return value
    return None


def _int_or_none(value: Any) -> Optional[int]:
    """Summary header values are JSON strings holding integers."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
