"""
Error taxonomy shared by the repositories, the remote client and the services.

Nothing below recovers locally: every error surfaces to the caller with a
description naming the failing operation. The API layer maps them to HTTP
status codes with `http_status_for`.
"""
from typing import Optional

from fastapi import status


class ChManagerError(Exception):
    """Base class for all console errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")


class ConnectionNotFound(ChManagerError):
    """The referenced connection identifier does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, operation: str, connection_id: int):
        self.connection_id = connection_id
        super().__init__(operation, f"connection {connection_id} not found")


class RemoteExecutionError(ChManagerError):
    """The remote database rejected or failed the statement."""

    def __init__(self, operation: str, message: str, remote_message: Optional[str] = None):
        self.remote_message = remote_message
        super().__init__(operation, message)


class PersistenceError(ChManagerError):
    """The local store failed a read, write or transaction."""


class DeadlineExceeded(ChManagerError):
    """The request deadline elapsed before the next I/O could begin."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class CoercionOverflow(ChManagerError):
    """Reserved for a stricter row mapping; the current coercion never raises it."""


class FavoriteNotFound(ChManagerError):
    """The referenced favorite comparison does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, operation: str, favorite_id: int):
        self.favorite_id = favorite_id
        super().__init__(operation, f"favorite comparison {favorite_id} not found")


class TableNotFound(ChManagerError):
    """The referenced table does not exist on the remote server."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, operation: str, database: str, table: str):
        self.database = database
        self.table = table
        super().__init__(operation, f"table {database}.{table} not found")


def http_status_for(error: Exception) -> int:
    """Map an error to the HTTP status code the API returns for it."""
    if isinstance(error, ChManagerError):
        return error.status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR
