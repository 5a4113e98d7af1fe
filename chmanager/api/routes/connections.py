"""
ClickHouse connections API routes.

Handles connection registration, schema browsing, server configuration
and ad-hoc queries.
"""
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from chmanager.api.schemas.compare import QueryHistoryResponse, QueryRequest, QueryResultSchema
from chmanager.api.schemas.configuration import ColumnMetaSchema, ConfigurationResponse, TableSchemaResponse
from chmanager.api.schemas.connections import (
    ConnectionCreateRequest,
    ConnectionResponse,
    ConnectionUpdateRequest,
    MessageResponse,
    TableMetaSchema,
)
from chmanager.core.context import RequestContext
from chmanager.core.dependencies import get_connection_service, get_request_context, to_http_exception
from chmanager.core.errors import ChManagerError
from chmanager.db.models import ClickHouseConnection
from chmanager.services.connection_service import ConnectionService

router = APIRouter(prefix="/api/v1/connections", tags=["Connections"])


@router.get("", response_model=List[ConnectionResponse])
def list_connections(
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> List[ConnectionResponse]:
    try:
        connections = service.list_connections(ctx)
    except ChManagerError as e:
        raise to_http_exception(e)
    return [ConnectionResponse.model_validate(c) for c in connections]


@router.post("", response_model=ConnectionResponse)
def create_connection(
    body: ConnectionCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionResponse:
    """Register a connection. The server must answer a ping first."""
    connection = ClickHouseConnection(**body.model_dump())
    try:
        created = service.create_connection(ctx, connection)
    except ChManagerError as e:
        raise to_http_exception(e)
    return ConnectionResponse.model_validate(created)


@router.get("/{connection_id}", response_model=ConnectionResponse)
def get_connection(
    connection_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionResponse:
    try:
        connection = service.get_connection(ctx, connection_id)
    except ChManagerError as e:
        raise to_http_exception(e)
    return ConnectionResponse.model_validate(connection)


@router.put("/{connection_id}", response_model=ConnectionResponse)
def update_connection(
    connection_id: int,
    body: ConnectionUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionResponse:
    """Update the provided fields of a connection."""
    try:
        updated = service.update_connection(ctx, connection_id, body.model_dump(exclude_unset=True, exclude_none=True))
    except ChManagerError as e:
        raise to_http_exception(e)
    return ConnectionResponse.model_validate(updated)


@router.delete("/{connection_id}", response_model=MessageResponse)
def delete_connection(
    connection_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> MessageResponse:
    try:
        service.delete_connection(ctx, connection_id)
    except ChManagerError as e:
        raise to_http_exception(e)
    return MessageResponse(message=f"Connection {connection_id} deleted")


@router.get("/{connection_id}/databases", response_model=List[str])
def get_databases(
    connection_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> List[str]:
    try:
        return service.get_databases(ctx, connection_id)
    except ChManagerError as e:
        raise to_http_exception(e)


@router.get("/{connection_id}/tables", response_model=List[TableMetaSchema])
def get_tables(
    connection_id: int,
    database: Optional[str] = Query(None, description="Database to list, defaults to the connection's"),
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> List[TableMetaSchema]:
    try:
        tables = service.get_tables(ctx, connection_id, database)
    except ChManagerError as e:
        raise to_http_exception(e)
    return [TableMetaSchema.model_validate(t) for t in tables]


@router.get("/{connection_id}/tables/{table}/schema", response_model=TableSchemaResponse)
def get_table_schema(
    connection_id: int,
    table: str,
    database: Optional[str] = Query(None, description="Database of the table, defaults to the connection's"),
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> TableSchemaResponse:
    """Columns and CREATE statement of a table."""
    try:
        schema, create_sql = service.get_schema(ctx, connection_id, table, database)
    except ChManagerError as e:
        raise to_http_exception(e)
    return TableSchemaResponse(
        database=schema.database,
        table=schema.table,
        columns=[ColumnMetaSchema.model_validate(c) for c in schema.columns],
        create_sql=create_sql,
    )


@router.get("/{connection_id}/configuration", response_model=ConfigurationResponse)
def get_configuration(
    connection_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> ConfigurationResponse:
    """
    Server configuration of a connection.

    Sections the server refuses to return are empty.
    """
    try:
        data = service.get_configuration_data(ctx, connection_id)
    except ChManagerError as e:
        raise to_http_exception(e)
    return ConfigurationResponse.model_validate(data)


@router.post("/{connection_id}/query", response_model=QueryResultSchema)
def execute_query(
    connection_id: int,
    body: QueryRequest,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> QueryResultSchema:
    """
    Execute an ad-hoc query and return all rows.

    The query is added to the connection history in the background.
    """
    try:
        result = service.execute_query(ctx, connection_id, body.query)
    except ChManagerError as e:
        raise to_http_exception(e)

    background_tasks.add_task(service.record_history, connection_id, body.query)
    return QueryResultSchema.model_validate(result)


@router.get("/{connection_id}/history", response_model=List[QueryHistoryResponse])
def get_query_history(
    connection_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: ConnectionService = Depends(get_connection_service),
) -> List[QueryHistoryResponse]:
    try:
        history = service.get_query_history(ctx, connection_id)
    except ChManagerError as e:
        raise to_http_exception(e)
    return [QueryHistoryResponse.model_validate(h) for h in history]
