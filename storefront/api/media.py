"""Media API endpoints.

Provides single-row media edits:
- POST /media/{id}/primary - make a media row the product's main image
- PUT /media/order - reorder media
- DELETE /media/{id} - delete a media row
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.schemas import ErrorResponse, MediaReorderRequest, MediaResponse
from storefront.catalog import MediaGroupStore, MediaOrder
from storefront.infrastructure.database import get_session

router = APIRouter(prefix="/media", tags=["Media"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]


@router.post(
    "/{media_id}/primary",
    response_model=MediaResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Set primary media",
)
async def set_primary_media(media_id: int, session: SessionDep) -> MediaResponse:
    """Make a media row its product's primary image."""
    media = await MediaGroupStore(session).set_primary_media(media_id)
    return MediaResponse(**media.to_dict())


@router.put(
    "/order",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={422: {"model": ErrorResponse}},
    summary="Reorder media",
)
async def reorder_media(request: MediaReorderRequest, session: SessionDep) -> Response:
    """Update the sort order of several media rows."""
    await MediaGroupStore(session).reorder_media(
        [MediaOrder(media_id=i.media_id, sort_order=i.sort_order) for i in request.items]
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{media_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete media",
)
async def delete_media(media_id: int, session: SessionDep) -> Response:
    """Delete a media row."""
    await MediaGroupStore(session).delete_media(media_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
