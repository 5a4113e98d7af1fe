"""
Query comparison.

Runs two statements against the same connection and returns their resource
statistics side by side. The statements run one after the other so they do
not compete for server resources; the first failure aborts the comparison.
"""
from typing import List

from chmanager.clients.base import CompareResult, RemoteClient
from chmanager.core.context import RequestContext
from chmanager.core.errors import ConnectionNotFound, FavoriteNotFound
from chmanager.core.logger import get_logger
from chmanager.db.models import ClickHouseConnection, FavoriteComparison
from chmanager.db.repositories import ConnectionStore, FavoriteStore

logger = get_logger(__name__)


class CompareService:
    """Paired query execution plus saved comparisons."""

    def __init__(
        self,
        connection_store: ConnectionStore,
        remote_client: RemoteClient,
        favorite_store: FavoriteStore,
    ):
        self.connection_store = connection_store
        self.remote_client = remote_client
        self.favorite_store = favorite_store

    def _resolve(self, ctx: RequestContext, connection_id: int, operation: str) -> ClickHouseConnection:
        connection = self.connection_store.find_by_id(ctx, connection_id)
        if connection is None:
            raise ConnectionNotFound(operation, connection_id)
        return connection

    def compare_queries(
        self,
        ctx: RequestContext,
        connection_id: int,
        sql_a: str,
        sql_b: str,
        include_results: bool = False,
    ) -> CompareResult:
        """
        Execute `sql_a` then `sql_b` and pair their statistics.

        Raises:
            ConnectionNotFound: If the connection does not exist
            RemoteExecutionError: From whichever statement fails first
            DeadlineExceeded: If the deadline elapses before a statement starts
        """
        connection = self._resolve(ctx, connection_id, "CompareService.compare_queries")

        stats_a = self.remote_client.execute_with_stats(ctx, connection, sql_a, include_result=include_results)
        stats_b = self.remote_client.execute_with_stats(ctx, connection, sql_b, include_result=include_results)

        logger.info(
            f"Compared queries on connection {connection_id}: "
            f"{stats_a.elapsed_ms:.1f}ms vs {stats_b.elapsed_ms:.1f}ms"
        )
        return CompareResult(query1_stats=stats_a, query2_stats=stats_b)

    def save_favorite(
        self, ctx: RequestContext, connection_id: int, title: str, query1: str, query2: str
    ) -> FavoriteComparison:
        self._resolve(ctx, connection_id, "CompareService.save_favorite")
        favorite = FavoriteComparison(
            connection_id=connection_id,
            title=title,
            query1=query1,
            query2=query2,
        )
        return self.favorite_store.create(ctx, favorite)

    def list_favorites(self, ctx: RequestContext, connection_id: int) -> List[FavoriteComparison]:
        self._resolve(ctx, connection_id, "CompareService.list_favorites")
        return self.favorite_store.find_all_by_connection_id(ctx, connection_id)

    def delete_favorite(self, ctx: RequestContext, favorite_id: int) -> None:
        if not self.favorite_store.delete(ctx, favorite_id):
            raise FavoriteNotFound("CompareService.delete_favorite", favorite_id)
