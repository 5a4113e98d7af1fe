"""
Local store repositories.

The abstract classes describe what the services need from the store; the
SQLAlchemy classes implement them. Each call opens its own session from the
injected factory, so one repository instance can be shared between threads.
Every call checks the request deadline first and wraps SQLAlchemy failures
into PersistenceError naming the operation.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from chmanager.core.context import RequestContext
from chmanager.core.errors import PersistenceError
from chmanager.core.logger import get_logger
from chmanager.db.models import (
    ClickHouseConnection,
    FavoriteComparison,
    QueryHistory,
    SlowQueryReport,
    utcnow,
)

logger = get_logger(__name__)


@contextmanager
def wrap_errors(operation: str):
    """Re-raise store failures as PersistenceError for `operation`.

    OverflowError comes from the DB-API driver when an integer does not fit
    the column type; SQLAlchemy lets it through unwrapped.
    """
    try:
        yield
    except (SQLAlchemyError, OverflowError) as e:
        logger.error(f"{operation} failed: {e}")
        raise PersistenceError(operation, str(e)) from e


# =============================================================================
# INTERFACES
# =============================================================================


class ConnectionStore(ABC):
    """Connection lookup and management."""

    @abstractmethod
    def find_by_id(self, ctx: RequestContext, connection_id: int) -> Optional[ClickHouseConnection]:
        """Return the connection or None when the id is unknown."""

    @abstractmethod
    def find_all(self, ctx: RequestContext) -> List[ClickHouseConnection]:
        pass

    @abstractmethod
    def create(self, ctx: RequestContext, connection: ClickHouseConnection) -> ClickHouseConnection:
        pass

    @abstractmethod
    def update(self, ctx: RequestContext, connection: ClickHouseConnection) -> ClickHouseConnection:
        pass

    @abstractmethod
    def delete(self, ctx: RequestContext, connection_id: int) -> bool:
        pass


class ReportStore(ABC):
    """Per-connection slow query report snapshots."""

    @abstractmethod
    def get_reports(self, ctx: RequestContext, connection_id: int) -> List[SlowQueryReport]:
        """Return the snapshot ordered by max_duration_ms descending."""

    @abstractmethod
    def save_reports(
        self, ctx: RequestContext, connection_id: int, reports: Sequence[SlowQueryReport]
    ) -> None:
        """Replace the snapshot of a connection in a single transaction."""


class HistoryStore(ABC):
    """Ad-hoc query history."""

    @abstractmethod
    def create(self, ctx: RequestContext, history: QueryHistory) -> QueryHistory:
        pass

    @abstractmethod
    def find_by_connection_id(self, ctx: RequestContext, connection_id: int, limit: int) -> List[QueryHistory]:
        pass

    @abstractmethod
    def prune(self, ctx: RequestContext, connection_id: int, max_limit: int) -> None:
        pass


class FavoriteStore(ABC):
    """Saved query comparisons."""

    @abstractmethod
    def create(self, ctx: RequestContext, favorite: FavoriteComparison) -> FavoriteComparison:
        pass

    @abstractmethod
    def find_all_by_connection_id(self, ctx: RequestContext, connection_id: int) -> List[FavoriteComparison]:
        pass

    @abstractmethod
    def find_by_id(self, ctx: RequestContext, favorite_id: int) -> Optional[FavoriteComparison]:
        pass

    @abstractmethod
    def delete(self, ctx: RequestContext, favorite_id: int) -> bool:
        pass


# =============================================================================
# SQLALCHEMY IMPLEMENTATIONS
# =============================================================================


class ConnectionRepository(ConnectionStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def find_by_id(self, ctx: RequestContext, connection_id: int) -> Optional[ClickHouseConnection]:
        operation = "ConnectionRepository.find_by_id"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            return session.get(ClickHouseConnection, connection_id)

    def find_all(self, ctx: RequestContext) -> List[ClickHouseConnection]:
        operation = "ConnectionRepository.find_all"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            stmt = select(ClickHouseConnection).order_by(ClickHouseConnection.name, ClickHouseConnection.id)
            return list(session.scalars(stmt))

    def create(self, ctx: RequestContext, connection: ClickHouseConnection) -> ClickHouseConnection:
        operation = "ConnectionRepository.create"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                session.add(connection)
            return connection

    def update(self, ctx: RequestContext, connection: ClickHouseConnection) -> ClickHouseConnection:
        """Write back a modified (detached) connection."""
        operation = "ConnectionRepository.update"
        ctx.check_deadline(operation)

        connection.updated_at = utcnow()
        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                merged = session.merge(connection)
            return merged

    def delete(self, ctx: RequestContext, connection_id: int) -> bool:
        """Delete a connection together with its reports, history and favorites."""
        operation = "ConnectionRepository.delete"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                for model in (SlowQueryReport, QueryHistory, FavoriteComparison):
                    session.execute(delete(model).where(model.connection_id == connection_id))
                result = session.execute(
                    delete(ClickHouseConnection).where(ClickHouseConnection.id == connection_id)
                )
            return result.rowcount > 0


class ReportRepository(ReportStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_reports(self, ctx: RequestContext, connection_id: int) -> List[SlowQueryReport]:
        operation = "ReportRepository.get_reports"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            stmt = (
                select(SlowQueryReport)
                .where(SlowQueryReport.connection_id == connection_id)
                .order_by(SlowQueryReport.max_duration_ms.desc(), SlowQueryReport.query_normalized.asc())
            )
            return list(session.scalars(stmt))

    def save_reports(
        self, ctx: RequestContext, connection_id: int, reports: Sequence[SlowQueryReport]
    ) -> None:
        """
        Replace all rows of `connection_id` with `reports`.

        Delete and insert run in one transaction: readers see either the old
        snapshot or the new one. Any failure, including the deadline running
        out between the two statements, rolls the transaction back.
        """
        operation = "ReportRepository.save_reports"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                session.execute(
                    delete(SlowQueryReport).where(SlowQueryReport.connection_id == connection_id)
                )
                if reports:
                    ctx.check_deadline(operation)
                    session.add_all(reports)

        logger.debug(f"Saved {len(reports)} slow query reports for connection {connection_id}")


class QueryHistoryRepository(HistoryStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, ctx: RequestContext, history: QueryHistory) -> QueryHistory:
        operation = "QueryHistoryRepository.create"
        ctx.check_deadline(operation)

        if history.created_at is None:
            history.created_at = utcnow()

        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                session.add(history)
            return history

    def find_by_connection_id(self, ctx: RequestContext, connection_id: int, limit: int) -> List[QueryHistory]:
        operation = "QueryHistoryRepository.find_by_connection_id"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            stmt = (
                select(QueryHistory)
                .where(QueryHistory.connection_id == connection_id)
                .order_by(QueryHistory.created_at.desc(), QueryHistory.id.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt))

    def prune(self, ctx: RequestContext, connection_id: int, max_limit: int) -> None:
        """Keep only the newest `max_limit` entries of a connection."""
        operation = "QueryHistoryRepository.prune"
        ctx.check_deadline(operation)

        keep = (
            select(QueryHistory.id)
            .where(QueryHistory.connection_id == connection_id)
            .order_by(QueryHistory.created_at.desc(), QueryHistory.id.desc())
            .limit(max_limit)
            .subquery()
        )
        stmt = (
            delete(QueryHistory)
            .where(QueryHistory.connection_id == connection_id)
            .where(QueryHistory.id.not_in(select(keep.c.id)))
            .execution_options(synchronize_session=False)
        )

        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                session.execute(stmt)


class FavoriteRepository(FavoriteStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, ctx: RequestContext, favorite: FavoriteComparison) -> FavoriteComparison:
        operation = "FavoriteRepository.create"
        ctx.check_deadline(operation)

        if favorite.created_at is None:
            favorite.created_at = utcnow()

        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                session.add(favorite)
            return favorite

    def find_all_by_connection_id(self, ctx: RequestContext, connection_id: int) -> List[FavoriteComparison]:
        operation = "FavoriteRepository.find_all_by_connection_id"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            stmt = (
                select(FavoriteComparison)
                .where(FavoriteComparison.connection_id == connection_id)
                .order_by(FavoriteComparison.created_at.desc(), FavoriteComparison.id.desc())
            )
            return list(session.scalars(stmt))

    def find_by_id(self, ctx: RequestContext, favorite_id: int) -> Optional[FavoriteComparison]:
        operation = "FavoriteRepository.find_by_id"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            return session.get(FavoriteComparison, favorite_id)

    def delete(self, ctx: RequestContext, favorite_id: int) -> bool:
        operation = "FavoriteRepository.delete"
        ctx.check_deadline(operation)

        with wrap_errors(operation), self._session_factory() as session:
            with session.begin():
                result = session.execute(
                    delete(FavoriteComparison).where(FavoriteComparison.id == favorite_id)
                )
            return result.rowcount > 0
