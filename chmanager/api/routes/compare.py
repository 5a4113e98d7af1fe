"""
Query comparison and favorite comparisons API routes.
"""
from typing import List

from fastapi import APIRouter, Depends

from chmanager.api.schemas.compare import (
    CompareRequest,
    CompareResponse,
    FavoriteCreateRequest,
    FavoriteResponse,
)
from chmanager.api.schemas.connections import MessageResponse
from chmanager.core.context import RequestContext
from chmanager.core.dependencies import get_compare_service, get_request_context, to_http_exception
from chmanager.core.errors import ChManagerError
from chmanager.services.compare_service import CompareService

router = APIRouter(prefix="/api/v1", tags=["Compare"])


@router.post("/connections/{connection_id}/compare", response_model=CompareResponse)
def compare_queries(
    connection_id: int,
    body: CompareRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: CompareService = Depends(get_compare_service),
) -> CompareResponse:
    """Run both queries one after the other and return their statistics."""
    try:
        result = service.compare_queries(
            ctx, connection_id, body.query1, body.query2, include_results=body.include_results
        )
    except ChManagerError as e:
        raise to_http_exception(e)
    return CompareResponse.model_validate(result)


@router.get("/connections/{connection_id}/favorites", response_model=List[FavoriteResponse])
def list_favorites(
    connection_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: CompareService = Depends(get_compare_service),
) -> List[FavoriteResponse]:
    try:
        favorites = service.list_favorites(ctx, connection_id)
    except ChManagerError as e:
        raise to_http_exception(e)
    return [FavoriteResponse.model_validate(f) for f in favorites]


@router.post("/connections/{connection_id}/favorites", response_model=FavoriteResponse)
def save_favorite(
    connection_id: int,
    body: FavoriteCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: CompareService = Depends(get_compare_service),
) -> FavoriteResponse:
    try:
        favorite = service.save_favorite(ctx, connection_id, body.title, body.query1, body.query2)
    except ChManagerError as e:
        raise to_http_exception(e)
    return FavoriteResponse.model_validate(favorite)


@router.delete("/favorites/{favorite_id}", response_model=MessageResponse)
def delete_favorite(
    favorite_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: CompareService = Depends(get_compare_service),
) -> MessageResponse:
    try:
        service.delete_favorite(ctx, favorite_id)
    except ChManagerError as e:
        raise to_http_exception(e)
    return MessageResponse(message=f"Favorite comparison {favorite_id} deleted")
