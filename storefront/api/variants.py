"""Variant API endpoints.

Provides:
- GET /variants/{id} - variant with its full combination
- PATCH /variants/{id} - enable or disable a variant
- GET /variants/{id}/resolution - price, weight, media and stock for a variant
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.schemas import (
    ErrorResponse,
    VariantResolutionResponse,
    VariantResponse,
    VariantUpdateRequest,
)
from storefront.catalog import FacetResolver, VariantService
from storefront.infrastructure.database import get_session

router = APIRouter(prefix="/variants", tags=["Variants"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]


@router.get(
    "/{variant_id}",
    response_model=VariantResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get variant",
)
async def get_variant(variant_id: int, session: SessionDep) -> VariantResponse:
    """Get a variant by ID."""
    variant = await VariantService(session).get_variant(variant_id)
    return VariantResponse(**variant.to_dict())


@router.patch(
    "/{variant_id}",
    response_model=VariantResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Update variant",
)
async def update_variant(
    variant_id: int,
    request: VariantUpdateRequest,
    session: SessionDep,
) -> VariantResponse:
    """Enable or disable a variant."""
    variant = await VariantService(session).set_active(variant_id, request.is_active)
    return VariantResponse(**variant.to_dict())


@router.get(
    "/{variant_id}/resolution",
    response_model=VariantResolutionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Resolve variant facets",
    description="Find the price, weight and media groups and the stock row governing a variant.",
)
async def resolve_variant(variant_id: int, session: SessionDep) -> VariantResolutionResponse:
    """Resolve every facet of a variant.

    Args:
        variant_id: Variant ID.
        session: Database session.

    Returns:
        Resolved groups; a facet with no matching group is null.
    """
    resolution = await FacetResolver(session).resolve(variant_id)
    return VariantResolutionResponse(**resolution.to_dict())
