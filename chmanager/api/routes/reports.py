"""
Slow query report API routes.
"""
from fastapi import APIRouter, Depends, Query

from chmanager.api.schemas.slow_query import SlowQueryReportResponse, SlowQueryReportSchema
from chmanager.core.context import RequestContext
from chmanager.core.dependencies import get_report_service, get_request_context, to_http_exception
from chmanager.core.errors import ChManagerError
from chmanager.core.logger import get_logger
from chmanager.services.report_service import ReportService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/connections", tags=["Reports"])


@router.get("/{connection_id}/reports/slow-queries", response_model=SlowQueryReportResponse)
def get_slow_queries(
    connection_id: int,
    refresh: bool = Query(False, description="Rebuild the report from system.query_log"),
    ctx: RequestContext = Depends(get_request_context),
    service: ReportService = Depends(get_report_service),
) -> SlowQueryReportResponse:
    """
    Top slow SELECT queries of the last 24 hours.

    Served from the stored snapshot unless `refresh=true` or nothing is
    stored yet.
    """
    try:
        reports, last_refresh = service.get_top_slow_queries(ctx, connection_id, force_refresh=refresh)
    except ChManagerError as e:
        raise to_http_exception(e)

    return SlowQueryReportResponse(
        data=[SlowQueryReportSchema.model_validate(r) for r in reports],
        last_refresh=last_refresh,
    )
