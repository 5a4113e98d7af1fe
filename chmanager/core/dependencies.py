"""
FastAPI dependencies.

Provides dependency injection functions for:
- The per-request deadline context
- The shared remote client
- The report, compare and connection services

Tests replace any of these through `app.dependency_overrides`.
"""
from typing import Optional

from fastapi import Depends, HTTPException

from chmanager.clients.base import RemoteClient
from chmanager.core.config import settings
from chmanager.core.context import RequestContext
from chmanager.core.errors import ChManagerError, http_status_for
from chmanager.core.logger import get_logger
from chmanager.db.repositories import (
    ConnectionRepository,
    FavoriteRepository,
    QueryHistoryRepository,
    ReportRepository,
)
from chmanager.db.session import get_session_factory
from chmanager.services.compare_service import CompareService
from chmanager.services.connection_service import ConnectionService
from chmanager.services.report_service import ReportService

logger = get_logger(__name__)

_remote_client: Optional[RemoteClient] = None


def get_request_context() -> RequestContext:
    """Deadline for the current request."""
    return RequestContext.with_timeout(settings.request_timeout)


def get_remote_client() -> RemoteClient:
    """Shared ClickHouse client; its connection pool is safe for concurrent use."""
    global _remote_client
    if _remote_client is None:
        from chmanager.clients.clickhouse import ClickHouseHTTPClient
        _remote_client = ClickHouseHTTPClient()
    return _remote_client


def close_remote_client() -> None:
    global _remote_client
    close = getattr(_remote_client, "close", None)
    if close is not None:
        close()
    _remote_client = None


def get_report_service(remote_client: RemoteClient = Depends(get_remote_client)) -> ReportService:
    session_factory = get_session_factory()
    return ReportService(
        report_store=ReportRepository(session_factory),
        connection_store=ConnectionRepository(session_factory),
        remote_client=remote_client,
    )


def get_compare_service(remote_client: RemoteClient = Depends(get_remote_client)) -> CompareService:
    session_factory = get_session_factory()
    return CompareService(
        connection_store=ConnectionRepository(session_factory),
        remote_client=remote_client,
        favorite_store=FavoriteRepository(session_factory),
    )


def get_connection_service(remote_client: RemoteClient = Depends(get_remote_client)) -> ConnectionService:
    session_factory = get_session_factory()
    return ConnectionService(
        connection_store=ConnectionRepository(session_factory),
        history_store=QueryHistoryRepository(session_factory),
        remote_client=remote_client,
    )


def to_http_exception(error: ChManagerError) -> HTTPException:
    """
    Convert a console error into the HTTPException returned to the client.

    Not-found errors -> 404, DeadlineExceeded -> 504, everything else -> 500.
    """
    status_code = http_status_for(error)
    if status_code >= 500:
        logger.error(f"Request failed ({status_code}): {error}")
    return HTTPException(status_code=status_code, detail=str(error))
