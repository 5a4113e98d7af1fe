"""
Connection management, schema browsing and ad-hoc queries.
"""
from typing import List, Optional, Tuple

from chmanager.clients.base import ClusterInfo, ConfigurationData, QueryResult, RemoteClient, TableMeta, TableSchema
from chmanager.core.config import settings
from chmanager.core.context import RequestContext
from chmanager.core.errors import ChManagerError, ConnectionNotFound, RemoteExecutionError, TableNotFound
from chmanager.core.logger import get_logger
from chmanager.db.models import ClickHouseConnection, QueryHistory, utcnow
from chmanager.db.repositories import ConnectionStore, HistoryStore

logger = get_logger(__name__)

CREATE_SQL_PLACEHOLDER = "-- Failed to fetch create SQL"


class ConnectionService:
    """Use cases around registered connections."""

    def __init__(
        self,
        connection_store: ConnectionStore,
        history_store: HistoryStore,
        remote_client: RemoteClient,
        history_limit: Optional[int] = None,
    ):
        self.connection_store = connection_store
        self.history_store = history_store
        self.remote_client = remote_client
        self.history_limit = history_limit if history_limit is not None else settings.history_limit

    def get_connection(self, ctx: RequestContext, connection_id: int) -> ClickHouseConnection:
        connection = self.connection_store.find_by_id(ctx, connection_id)
        if connection is None:
            raise ConnectionNotFound("ConnectionService.get_connection", connection_id)
        return connection

    def list_connections(self, ctx: RequestContext) -> List[ClickHouseConnection]:
        return self.connection_store.find_all(ctx)

    def create_connection(self, ctx: RequestContext, connection: ClickHouseConnection) -> ClickHouseConnection:
        """
        Register a connection after checking the server answers.

        The server version is stored alongside when it can be read.
        """
        self.remote_client.ping(ctx, connection)

        try:
            connection.server_info = self.remote_client.get_server_info(ctx, connection)
        except RemoteExecutionError as e:
            logger.warning(f"Could not read server info from {connection.host}: {e}")

        now = utcnow()
        connection.created_at = now
        connection.updated_at = now
        created = self.connection_store.create(ctx, connection)
        logger.info(f"Registered connection {created.id} ({created.host}:{created.port})")
        return created

    def update_connection(self, ctx: RequestContext, connection_id: int, changes: dict) -> ClickHouseConnection:
        """
        Apply `changes` (field name -> value) to a connection.

        The server is pinged again when the address or credentials change.
        """
        connection = self.get_connection(ctx, connection_id)
        for field, value in changes.items():
            setattr(connection, field, value)

        if changes.keys() & {"host", "port", "protocol", "username", "password"}:
            self.remote_client.ping(ctx, connection)

        updated = self.connection_store.update(ctx, connection)
        logger.info(f"Updated connection {connection_id} ({', '.join(sorted(changes))})")
        return updated

    def delete_connection(self, ctx: RequestContext, connection_id: int) -> None:
        if not self.connection_store.delete(ctx, connection_id):
            raise ConnectionNotFound("ConnectionService.delete_connection", connection_id)
        logger.info(f"Deleted connection {connection_id}")

    def get_databases(self, ctx: RequestContext, connection_id: int) -> List[str]:
        connection = self.get_connection(ctx, connection_id)
        return self.remote_client.get_databases(ctx, connection)

    def get_tables(
        self, ctx: RequestContext, connection_id: int, database: Optional[str] = None
    ) -> List[TableMeta]:
        connection = self.get_connection(ctx, connection_id)
        return self.remote_client.get_tables(ctx, connection, database or None)

    def get_schema(
        self, ctx: RequestContext, connection_id: int, table: str, database: Optional[str] = None
    ) -> Tuple[TableSchema, str]:
        """
        Columns and CREATE statement of a table.

        A table without columns does not exist. The CREATE statement is a
        placeholder comment when it cannot be read.
        """
        connection = self.get_connection(ctx, connection_id)
        schema = self.remote_client.get_table_schema(ctx, connection, table, database or None)
        if not schema.columns:
            raise TableNotFound("ConnectionService.get_schema", schema.database, table)

        try:
            create_sql = self.remote_client.get_create_sql(ctx, connection, table, database or None)
        except RemoteExecutionError as e:
            logger.warning(f"Could not read CREATE statement of {schema.database}.{table}: {e}")
            create_sql = CREATE_SQL_PLACEHOLDER
        return schema, create_sql

    def get_configuration_data(self, ctx: RequestContext, connection_id: int) -> ConfigurationData:
        """
        Collect the configuration page of a connection.

        Each section is read separately. A section the server refuses is
        left empty; the cluster info always names the connection.
        """
        connection = self.get_connection(ctx, connection_id)
        client = self.remote_client

        try:
            cluster_info = client.get_cluster_config(ctx, connection)
        except RemoteExecutionError as e:
            logger.warning(f"Cluster info of connection {connection_id} unavailable: {e}")
            cluster_info = ClusterInfo.for_connection(connection)
        data = ConfigurationData(cluster_info=cluster_info)

        sections = [
            ("settings", client.get_settings),
            ("users", client.get_users),
            ("roles", client.get_roles),
            ("processes", client.get_process_stats),
            ("log_config", client.get_log_config),
        ]
        for name, read in sections:
            try:
                setattr(data, name, read(ctx, connection))
            except RemoteExecutionError as e:
                logger.warning(f"Skipping {name} of connection {connection_id}: {e}")

        try:
            data.storage_policies, data.disks = client.get_storage_policies(ctx, connection)
        except RemoteExecutionError as e:
            logger.warning(f"Skipping storage policies of connection {connection_id}: {e}")

        return data

    def execute_query(self, ctx: RequestContext, connection_id: int, sql: str) -> QueryResult:
        """Run an ad-hoc statement; the caller records it with `record_history`."""
        connection = self.get_connection(ctx, connection_id)
        return self.remote_client.execute_with_results(ctx, connection, sql)

    def record_history(self, connection_id: int, sql: str) -> None:
        """
        Store an executed statement and prune the history of the connection.

        Runs detached from the request (no deadline); failures are logged
        and dropped so they never affect the query response.
        """
        ctx = RequestContext.background()
        try:
            self.history_store.create(ctx, QueryHistory(connection_id=connection_id, query=sql))
            self.history_store.prune(ctx, connection_id, self.history_limit)
        except ChManagerError as e:
            logger.error(f"Failed to record query history for connection {connection_id}: {e}")

    def get_query_history(self, ctx: RequestContext, connection_id: int) -> List[QueryHistory]:
        self.get_connection(ctx, connection_id)
        return self.history_store.find_by_connection_id(ctx, connection_id, self.history_limit)
