"""
API tests through the FastAPI TestClient.

The local store is the in-memory test database and the remote client is
the instrumented fake, so no ClickHouse server is needed.
"""
import time

import pytest
from fastapi.testclient import TestClient

from chmanager.clients.base import ColumnMeta
from chmanager.core.context import RequestContext
from chmanager.core.dependencies import get_remote_client, get_request_context
from chmanager.core.errors import RemoteExecutionError
from chmanager.main import app


@pytest.fixture
def client(session_factory, fake_remote, monkeypatch):
    monkeypatch.setattr("chmanager.core.dependencies.get_session_factory", lambda: session_factory)
    app.dependency_overrides[get_remote_client] = lambda: fake_remote
    yield TestClient(app)
    app.dependency_overrides.clear()


SLOW_ROW = {
    "executed_by": "alice",
    "sample_query": "SELECT * FROM hits WHERE id = 42",
    "query_normalized": "SELECT * FROM hits WHERE id = ?",
    "executions": 4,
    "avg_duration_ms": 60.25,
    "p95_duration_ms": 110.0,
    "max_duration_ms": 120.5,
    "total_rows_read": 5000,
    "total_bytes_read": 1048576,
}


class TestRoot:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["app"] == "ClickHouse Manager"


class TestSlowQueriesEndpoint:

    def test_cached_snapshot(self, client, seeded_reports, fake_remote):
        response = client.get("/api/v1/connections/7/reports/slow-queries")

        assert response.status_code == 200
        body = response.json()
        assert [row["executed_by"] for row in body["data"]] == ["alice", "bob"]
        assert body["last_refresh"] == "2026-01-15T08:30:00.123456"
        assert fake_remote.calls == []

    def test_refresh(self, client, seeded_reports, fake_remote):
        fake_remote.rows = [SLOW_ROW]

        response = client.get("/api/v1/connections/7/reports/slow-queries", params={"refresh": "true"})

        assert response.status_code == 200
        [row] = response.json()["data"]
        assert row["query_normalized"] == "SELECT * FROM hits WHERE id = ?"
        assert row["total_bytes_read"] == 1048576
        assert row["last_refresh"] == response.json()["last_refresh"]
        assert len(fake_remote.sql_calls("execute_with_results")) == 1

    def test_unknown_connection(self, client):
        response = client.get("/api/v1/connections/999/reports/slow-queries", params={"refresh": "true"})

        assert response.status_code == 404
        assert "999" in response.json()["detail"]

    def test_remote_failure(self, client, sample_connection, fake_remote):
        fake_remote.error = RemoteExecutionError("ClickHouseClient.execute_with_results", "HTTP 500: boom")

        response = client.get("/api/v1/connections/7/reports/slow-queries")

        assert response.status_code == 500

    def test_deadline_exceeded(self, client, sample_connection):
        app.dependency_overrides[get_request_context] = lambda: RequestContext(deadline=time.monotonic() - 1)

        response = client.get("/api/v1/connections/7/reports/slow-queries")

        assert response.status_code == 504

    def test_invalid_id(self, client):
        response = client.get("/api/v1/connections/abc/reports/slow-queries")

        assert response.status_code == 422


class TestCompareEndpoint:

    def test_compare(self, client, sample_connection, fake_remote):
        response = client.post(
            "/api/v1/connections/7/compare",
            json={"query1": "SELECT 1", "query2": "SELECT 2"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["query1_stats"]["query"] == "SELECT 1"
        assert body["query2_stats"]["rows_read"] == 100
        assert body["query1_stats"]["result"] is None
        assert fake_remote.sql_calls("execute_with_stats") == ["SELECT 1", "SELECT 2"]

    def test_compare_failure(self, client, sample_connection, fake_remote):
        fake_remote.failing_sql = {"SELECT nope"}

        response = client.post(
            "/api/v1/connections/7/compare",
            json={"query1": "SELECT nope", "query2": "SELECT 2"},
        )

        assert response.status_code == 500
        assert "bad query SELECT nope" in response.json()["detail"]

    def test_compare_requires_both_queries(self, client, sample_connection):
        response = client.post("/api/v1/connections/7/compare", json={"query1": "SELECT 1"})

        assert response.status_code == 422

    def test_favorites(self, client, sample_connection):
        created = client.post(
            "/api/v1/connections/7/favorites",
            json={"title": "count vs uniq", "query1": "SELECT count()", "query2": "SELECT uniq(x)"},
        )
        assert created.status_code == 200
        favorite_id = created.json()["id"]

        listed = client.get("/api/v1/connections/7/favorites")
        assert [f["id"] for f in listed.json()] == [favorite_id]

        deleted = client.delete(f"/api/v1/favorites/{favorite_id}")
        assert deleted.status_code == 200
        assert client.delete(f"/api/v1/favorites/{favorite_id}").status_code == 404


class TestConnectionsEndpoint:

    def test_create_and_list(self, client, fake_remote):
        response = client.post(
            "/api/v1/connections",
            json={"name": "Analytics", "host": "ch.local", "protocol": "HTTPS", "port": 8443, "password": "pw"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["protocol"] == "https"
        assert body["server_info"] == "24.8.1.1"
        assert "password" not in body

        listed = client.get("/api/v1/connections").json()
        assert [c["id"] for c in listed] == [body["id"]]

    def test_create_rejects_bad_protocol(self, client):
        response = client.post("/api/v1/connections", json={"name": "x", "host": "h", "protocol": "tcp"})

        assert response.status_code == 422

    def test_get_and_delete(self, client, sample_connection):
        assert client.get("/api/v1/connections/7").json()["database"] == "analytics"

        assert client.delete("/api/v1/connections/7").status_code == 200
        assert client.get("/api/v1/connections/7").status_code == 404

    def test_update(self, client, sample_connection, fake_remote):
        response = client.put("/api/v1/connections/7", json={"port": 8443, "protocol": "https"})

        assert response.status_code == 200
        assert response.json()["port"] == 8443
        assert fake_remote.calls == [("ping", None)]

        assert client.put("/api/v1/connections/999", json={"name": "x"}).status_code == 404

    def test_databases_and_tables(self, client, sample_connection, fake_remote):
        assert client.get("/api/v1/connections/7/databases").json() == ["default", "system"]

        response = client.get("/api/v1/connections/7/tables", params={"database": "logs"})

        assert response.status_code == 200
        assert ("get_tables", "logs") in fake_remote.calls

    def test_query_records_history(self, client, sample_connection, fake_remote):
        fake_remote.rows = [{"x": 1}]

        response = client.post("/api/v1/connections/7/query", json={"query": "SELECT 1 AS x"})

        assert response.status_code == 200
        assert response.json()["rows"] == [{"x": 1}]
        assert response.json()["row_count"] == 1

        history = client.get("/api/v1/connections/7/history").json()
        assert [h["query"] for h in history] == ["SELECT 1 AS x"]

    def test_failed_query_is_not_recorded(self, client, sample_connection, fake_remote):
        fake_remote.error = RemoteExecutionError("ClickHouseClient.execute_with_results", "HTTP 500: boom")

        response = client.post("/api/v1/connections/7/query", json={"query": "SELECT broken"})

        assert response.status_code == 500
        assert client.get("/api/v1/connections/7/history").json() == []


class TestConfigurationEndpoints:

    def test_configuration(self, client, sample_connection, fake_remote):
        fake_remote.config_failures = {"get_users"}

        response = client.get("/api/v1/connections/7/configuration")

        assert response.status_code == 200
        body = response.json()
        assert body["cluster_info"]["host"] == "clickhouse.test.local"
        assert body["cluster_info"]["shards"] == 2
        assert body["settings"][0]["changed"] is True
        assert body["users"] == []
        assert body["storage_policies"][0]["volumes"][0]["disks"] == ["default"]
        assert body["log_config"]["oldest"] is None

    def test_configuration_unknown_connection(self, client):
        assert client.get("/api/v1/connections/999/configuration").status_code == 404

    def test_table_schema(self, client, sample_connection, fake_remote):
        fake_remote.columns = {"events": [ColumnMeta(name="id", type="UInt64", is_in_sorting_key=True)]}

        response = client.get("/api/v1/connections/7/tables/events/schema", params={"database": "logs"})

        assert response.status_code == 200
        body = response.json()
        assert (body["database"], body["table"]) == ("logs", "events")
        assert body["columns"][0]["is_in_sorting_key"] is True
        assert body["create_sql"].startswith("CREATE TABLE logs.events")

    def test_table_schema_unknown_table(self, client, sample_connection):
        response = client.get("/api/v1/connections/7/tables/missing/schema")

        assert response.status_code == 404
        assert "analytics.missing" in response.json()["detail"]
