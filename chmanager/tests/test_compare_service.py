"""
Tests for query comparison and favorite comparisons.
"""
import time

import pytest

from chmanager.core.context import RequestContext
from chmanager.core.errors import (
    ConnectionNotFound,
    DeadlineExceeded,
    FavoriteNotFound,
    RemoteExecutionError,
)
from chmanager.services.compare_service import CompareService


@pytest.fixture
def service(connection_repo, fake_remote, favorite_repo):
    return CompareService(connection_repo, fake_remote, favorite_repo)


class TestCompareQueries:

    def test_runs_queries_sequentially_in_order(self, service, sample_connection, fake_remote, ctx):
        result = service.compare_queries(ctx, 7, "SELECT 1", "SELECT 2")

        assert fake_remote.sql_calls("execute_with_stats") == ["SELECT 1", "SELECT 2"]
        assert result.query1_stats.query == "SELECT 1"
        assert result.query2_stats.query == "SELECT 2"
        assert result.query1_stats.elapsed_ms < result.query2_stats.elapsed_ms

    def test_first_failure_skips_second_query(self, service, sample_connection, fake_remote, ctx):
        fake_remote.failing_sql = {"SELECT broken"}

        with pytest.raises(RemoteExecutionError) as exc_info:
            service.compare_queries(ctx, 7, "SELECT broken", "SELECT 2")

        assert exc_info.value.remote_message == "bad query SELECT broken"
        assert fake_remote.sql_calls("execute_with_stats") == ["SELECT broken"]

    def test_second_failure_returns_no_partial_result(self, service, sample_connection, fake_remote, ctx):
        fake_remote.failing_sql = {"SELECT broken"}

        with pytest.raises(RemoteExecutionError):
            service.compare_queries(ctx, 7, "SELECT 1", "SELECT broken")

        assert fake_remote.sql_calls("execute_with_stats") == ["SELECT 1", "SELECT broken"]

    def test_missing_connection(self, service, fake_remote, ctx):
        with pytest.raises(ConnectionNotFound):
            service.compare_queries(ctx, 999, "SELECT 1", "SELECT 2")
        assert fake_remote.calls == []

    def test_include_results(self, service, sample_connection, ctx):
        result = service.compare_queries(ctx, 7, "SELECT 1", "SELECT 2", include_results=True)

        assert result.query1_stats.result is not None
        assert result.query2_stats.result is not None

    def test_expired_deadline(self, service, sample_connection, fake_remote):
        expired = RequestContext(deadline=time.monotonic() - 1)

        with pytest.raises(DeadlineExceeded):
            service.compare_queries(expired, 7, "SELECT 1", "SELECT 2")
        assert fake_remote.calls == []


class TestFavorites:

    def test_save_and_list(self, service, sample_connection, ctx):
        first = service.save_favorite(ctx, 7, "count vs uniq", "SELECT count() FROM t", "SELECT uniq(x) FROM t")
        second = service.save_favorite(ctx, 7, "old vs new", "SELECT 1", "SELECT 2")

        favorites = service.list_favorites(ctx, 7)

        assert first.id is not None
        assert [f.id for f in favorites] == [second.id, first.id]
        assert favorites[1].query1 == "SELECT count() FROM t"

    def test_save_requires_connection(self, service, ctx):
        with pytest.raises(ConnectionNotFound):
            service.save_favorite(ctx, 999, "t", "SELECT 1", "SELECT 2")

    def test_delete(self, service, sample_connection, ctx):
        favorite = service.save_favorite(ctx, 7, "t", "SELECT 1", "SELECT 2")

        service.delete_favorite(ctx, favorite.id)

        assert service.list_favorites(ctx, 7) == []

    def test_delete_unknown(self, service, ctx):
        with pytest.raises(FavoriteNotFound):
            service.delete_favorite(ctx, 12345)
