"""
Top slow queries report.

Aggregates the server's `system.query_log` into one row per
(initial_user, normalized query), keeps the result as a per-connection
snapshot in the local store and serves it from there until the next refresh.

Flow of `get_top_slow_queries`:

    not forced and snapshot exists  ->  return the snapshot
    otherwise                       ->  resolve connection
                                        -> run the aggregation remotely
                                        -> map rows into SlowQueryReport
                                        -> replace the snapshot
                                        -> return the new rows

A failed refresh leaves the previous snapshot untouched.
"""
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from chmanager.clients.base import RemoteClient, Row
from chmanager.core.context import RequestContext
from chmanager.core.errors import ConnectionNotFound
from chmanager.core.logger import get_logger
from chmanager.db.models import MAX_STORED_COUNT, SlowQueryReport, utcnow
from chmanager.db.repositories import ConnectionStore, ReportStore
from chmanager.services.coercion import to_float64, to_string, to_uint64

logger = get_logger(__name__)

REPORT_WINDOW_HOURS = 24
REPORT_LIMIT = 20

SLOW_QUERIES_SQL = f"""
SELECT
    initial_user                               AS executed_by,
    any(query)                             AS sample_query,
    normalizeQuery(query)                      AS query_normalized,
    count()                                    AS executions,
    round(avg(query_duration_ms), 2)           AS avg_duration_ms,
    quantileTDigest(0.95)(query_duration_ms)   AS p95_duration_ms,
    max(query_duration_ms)                     AS max_duration_ms,
    sum(read_rows)                             AS total_rows_read,
    sum(read_bytes)                            AS total_bytes_read
FROM system.query_log
WHERE
    event_time >= now() - INTERVAL {REPORT_WINDOW_HOURS} HOUR
    AND type = 'QueryFinish'
    AND query_kind = 'Select'
    AND is_initial_query = 1
GROUP BY
    executed_by,
    query_normalized
ORDER BY max_duration_ms DESC
LIMIT {REPORT_LIMIT};
"""


def report_sort_key(report: SlowQueryReport):
    """Descending max_duration_ms, ties by query_normalized ascending."""
    return -report.max_duration_ms, report.query_normalized


def stored_count(value) -> int:
    """Unsigned count clamped to what the local store can hold."""
    return min(to_uint64(value), MAX_STORED_COUNT)


def map_report_row(row: Row, connection_id: int, now: datetime) -> SlowQueryReport:
    """Build a SlowQueryReport from one aggregation row."""
    return SlowQueryReport(
        connection_id=connection_id,
        executed_by=to_string(row.get("executed_by")),
        sample_query=to_string(row.get("sample_query")),
        query_normalized=to_string(row.get("query_normalized")),
        executions=stored_count(row.get("executions")),
        avg_duration_ms=to_float64(row.get("avg_duration_ms")),
        p95_duration_ms=to_float64(row.get("p95_duration_ms")),
        max_duration_ms=to_float64(row.get("max_duration_ms")),
        total_rows_read=stored_count(row.get("total_rows_read")),
        total_bytes_read=stored_count(row.get("total_bytes_read")),
        last_refresh=now,
        created_at=now,
        updated_at=now,
    )


def map_report_rows(rows: Sequence[Row], connection_id: int, now: datetime) -> List[SlowQueryReport]:
    """Map aggregation rows and put them in report order."""
    reports = [map_report_row(row, connection_id, now) for row in rows]
    reports.sort(key=report_sort_key)
    return reports


class ReportService:
    """
    Serves the top slow queries report of a connection.

    Stateless: all state lives in the stores and the remote server, so one
    instance can serve concurrent requests.
    """

    def __init__(
        self,
        report_store: ReportStore,
        connection_store: ConnectionStore,
        remote_client: RemoteClient,
    ):
        self.report_store = report_store
        self.connection_store = connection_store
        self.remote_client = remote_client

    def get_top_slow_queries(
        self,
        ctx: RequestContext,
        connection_id: int,
        force_refresh: bool = False,
    ) -> Tuple[List[SlowQueryReport], Optional[datetime]]:
        """
        Return the report rows of a connection and the time they were built.

        Args:
            ctx: Request context carrying the deadline
            connection_id: Connection to report on
            force_refresh: Rebuild the snapshot even when one is cached

        Returns:
            Tuple of (reports ordered by max_duration_ms desc, refresh time)

        Raises:
            ConnectionNotFound: If the connection does not exist
            RemoteExecutionError: If the aggregation fails on the server
            PersistenceError: If the local store fails
            DeadlineExceeded: If the deadline elapses before the next I/O
        """
        if not force_refresh:
            cached = self.report_store.get_reports(ctx, connection_id)
            if cached:
                # A snapshot is written at once, so any row's created_at will do
                last_refresh = cached[0].created_at
                logger.debug(f"Serving {len(cached)} cached slow query rows for connection {connection_id}")
                return cached, last_refresh

        return self.refresh(ctx, connection_id)

    def refresh(self, ctx: RequestContext, connection_id: int) -> Tuple[List[SlowQueryReport], datetime]:
        """Rebuild the snapshot of a connection from the server's query log."""
        connection = self.connection_store.find_by_id(ctx, connection_id)
        if connection is None:
            raise ConnectionNotFound("ReportService.get_top_slow_queries", connection_id)

        logger.info(f"Refreshing slow query report for connection {connection_id} ({connection.host})")
        result = self.remote_client.execute_with_results(ctx, connection, SLOW_QUERIES_SQL)

        now = utcnow()
        reports = map_report_rows(result.rows, connection_id, now)

        self.report_store.save_reports(ctx, connection_id, reports)
        logger.info(f"Stored {len(reports)} slow query rows for connection {connection_id}")

        return reports, now
