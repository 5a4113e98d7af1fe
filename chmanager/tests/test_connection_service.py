"""
Tests for connection management, schema browsing and query history.
"""
from datetime import timedelta

import pytest

from chmanager.clients.base import ColumnMeta, TableMeta
from chmanager.core.errors import ConnectionNotFound, PersistenceError, RemoteExecutionError, TableNotFound
from chmanager.db.models import ClickHouseConnection, QueryHistory, utcnow
from chmanager.db.repositories import HistoryStore
from chmanager.services.connection_service import CREATE_SQL_PLACEHOLDER, ConnectionService


@pytest.fixture
def service(connection_repo, history_repo, fake_remote):
    return ConnectionService(connection_repo, history_repo, fake_remote, history_limit=3)


class TestConnections:

    def test_create_pings_and_stores_version(self, service, fake_remote, ctx):
        created = service.create_connection(ctx, ClickHouseConnection(name="new", host="ch2.local"))

        assert created.id is not None
        assert created.server_info == "24.8.1.1"
        assert [name for name, _ in fake_remote.calls] == ["ping", "get_server_info"]
        assert service.get_connection(ctx, created.id).host == "ch2.local"

    def test_create_rejects_unreachable_server(self, service, fake_remote, ctx):
        fake_remote.ping_error = RemoteExecutionError("ClickHouseClient.ping", "connection refused")

        with pytest.raises(RemoteExecutionError):
            service.create_connection(ctx, ClickHouseConnection(name="down", host="nowhere"))
        assert service.list_connections(ctx) == []

    def test_get_unknown(self, service, ctx):
        with pytest.raises(ConnectionNotFound) as exc_info:
            service.get_connection(ctx, 999)
        assert exc_info.value.connection_id == 999

    def test_update_without_address_change_skips_ping(self, service, sample_connection, fake_remote, ctx):
        updated = service.update_connection(ctx, 7, {"name": "Renamed", "database": "logs"})

        assert updated.name == "Renamed"
        assert service.get_connection(ctx, 7).database == "logs"
        assert fake_remote.calls == []

    def test_update_address_pings_first(self, service, sample_connection, fake_remote, ctx):
        fake_remote.ping_error = RemoteExecutionError("ClickHouseClient.ping", "connection refused")

        with pytest.raises(RemoteExecutionError):
            service.update_connection(ctx, 7, {"host": "moved.local"})
        assert service.get_connection(ctx, 7).host == "clickhouse.test.local"

    def test_update_unknown(self, service, ctx):
        with pytest.raises(ConnectionNotFound):
            service.update_connection(ctx, 999, {"name": "x"})

    def test_delete(self, service, sample_connection, ctx):
        service.delete_connection(ctx, 7)

        with pytest.raises(ConnectionNotFound):
            service.get_connection(ctx, 7)
        with pytest.raises(ConnectionNotFound):
            service.delete_connection(ctx, 7)


class TestBrowsing:

    def test_databases(self, service, sample_connection, ctx):
        assert service.get_databases(ctx, 7) == ["default", "system"]

    def test_tables(self, service, sample_connection, fake_remote, ctx):
        fake_remote.tables = [TableMeta(name="events", engine="MergeTree", total_rows=10, total_bytes=100)]

        tables = service.get_tables(ctx, 7, "analytics")

        assert [t.name for t in tables] == ["events"]
        assert fake_remote.calls == [("get_tables", "analytics")]

    def test_tables_unknown_connection(self, service, fake_remote, ctx):
        with pytest.raises(ConnectionNotFound):
            service.get_tables(ctx, 999)
        assert fake_remote.calls == []

    def test_execute_query(self, service, sample_connection, fake_remote, ctx):
        fake_remote.rows = [{"x": 1}]

        result = service.execute_query(ctx, 7, "SELECT 1 AS x")

        assert result.rows == [{"x": 1}]
        assert fake_remote.sql_calls("execute_with_results") == ["SELECT 1 AS x"]


class TestHistory:

    def test_record_and_prune(self, service, history_repo, sample_connection, ctx):
        earlier = utcnow() - timedelta(hours=1)
        for i in range(3):
            history_repo.create(ctx, QueryHistory(
                connection_id=7, query=f"SELECT {i}", created_at=earlier + timedelta(seconds=i),
            ))

        service.record_history(7, "SELECT latest")

        history = service.get_query_history(ctx, 7)
        assert [h.query for h in history] == ["SELECT latest", "SELECT 2", "SELECT 1"]

    def test_record_failure_is_swallowed(self, connection_repo, fake_remote, sample_connection):
        class BrokenHistory(HistoryStore):
            def create(self, ctx, history):
                raise PersistenceError("QueryHistoryRepository.create", "database is locked")

            def find_by_connection_id(self, ctx, connection_id, limit):
                return []

            def prune(self, ctx, connection_id, max_limit):
                raise AssertionError("must not be called")

        service = ConnectionService(connection_repo, BrokenHistory(), fake_remote)

        service.record_history(7, "SELECT 1")

    def test_history_unknown_connection(self, service, ctx):
        with pytest.raises(ConnectionNotFound):
            service.get_query_history(ctx, 999)


class TestSchema:

    def test_columns_and_create_sql(self, service, sample_connection, fake_remote, ctx):
        fake_remote.columns = {"events": [ColumnMeta(name="id", type="UInt64", is_in_primary_key=True)]}

        schema, create_sql = service.get_schema(ctx, 7, "events")

        assert (schema.database, schema.table) == ("analytics", "events")
        assert [c.name for c in schema.columns] == ["id"]
        assert create_sql.startswith("CREATE TABLE analytics.events")

    def test_unknown_table(self, service, sample_connection, fake_remote, ctx):
        with pytest.raises(TableNotFound) as exc_info:
            service.get_schema(ctx, 7, "missing", "logs")

        assert (exc_info.value.database, exc_info.value.table) == ("logs", "missing")
        assert ("get_create_sql", "missing") not in fake_remote.calls

    def test_create_sql_failure_gives_placeholder(self, service, sample_connection, fake_remote, ctx):
        fake_remote.columns = {"events": [ColumnMeta(name="id", type="UInt64")]}
        fake_remote.create_sql_error = RemoteExecutionError("ClickHouseClient.get_create_sql", "HTTP 500: denied")

        schema, create_sql = service.get_schema(ctx, 7, "events")

        assert create_sql == CREATE_SQL_PLACEHOLDER
        assert len(schema.columns) == 1

    def test_unknown_connection(self, service, fake_remote, ctx):
        with pytest.raises(ConnectionNotFound):
            service.get_schema(ctx, 999, "events")
        assert fake_remote.calls == []


class TestConfiguration:

    def test_collects_every_section(self, service, sample_connection, fake_remote, ctx):
        data = service.get_configuration_data(ctx, 7)

        assert data.cluster_info.cluster_name == "default"
        assert data.cluster_info.host == "clickhouse.test.local"
        assert [s.name for s in data.settings] == ["max_threads"]
        assert [u.name for u in data.users] == ["default"]
        assert [r.name for r in data.roles] == ["admin"]
        assert [p.name for p in data.storage_policies] == ["default"]
        assert [d.name for d in data.disks] == ["default"]
        assert data.processes.queries_in_progress == 3
        assert data.log_config.flush_interval == 7500

    def test_failed_sections_are_skipped(self, service, sample_connection, fake_remote, ctx):
        fake_remote.config_failures = {"get_settings", "get_storage_policies", "get_log_config"}

        data = service.get_configuration_data(ctx, 7)

        assert data.settings == []
        assert data.storage_policies == []
        assert data.disks == []
        assert data.log_config.enabled is True
        assert data.log_config.flush_interval == 0
        assert [u.name for u in data.users] == ["default"]
        assert data.processes.queries_in_progress == 3

    def test_cluster_failure_falls_back_to_connection(self, service, sample_connection, fake_remote, ctx):
        fake_remote.config_failures = {"get_cluster_config"}

        info = service.get_configuration_data(ctx, 7).cluster_info

        assert (info.host, info.port, info.database_default) == ("clickhouse.test.local", 8123, "analytics")
        assert info.version == ""

    def test_unknown_connection(self, service, fake_remote, ctx):
        with pytest.raises(ConnectionNotFound):
            service.get_configuration_data(ctx, 999)
        assert fake_remote.calls == []
