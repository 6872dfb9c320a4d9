"""Product catalog API endpoints.

Provides endpoints for one product's grouping data:
- /products/{id}/attributes - attribute bindings
- /products/{id}/price-groups, /weight-groups - facet groups
- /products/{id}/media, /media-groups - media sync and reads
- /products/{id}/variants, /stock - variant matrix and quantities
- /products/{id}/catalog - combined update and snapshot
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.schemas import (
    BindingRequest,
    BindingResponse,
    BindingsUpdateRequest,
    CatalogResponse,
    CombinationStockRequest,
    ErrorResponse,
    MediaGroupResponse,
    MediaResponse,
    MediaSyncItemRequest,
    MediaSyncRequest,
    PriceGroupRequest,
    PriceGroupResponse,
    PriceGroupsReplaceRequest,
    ProductUpdateRequest,
    ReconcileResponse,
    RecomputeResponse,
    StockResponse,
    StockSetRequest,
    VariantResponse,
    WeightGroupRequest,
    WeightGroupResponse,
    WeightGroupsReplaceRequest,
)
from storefront.catalog import (
    AttributeBindingService,
    BindingSpec,
    CombinationStock,
    GroupItem,
    MediaGroupStore,
    MediaSyncItem,
    PriceGroupStore,
    PricePayload,
    ProductCatalogService,
    ProductUpdate,
    StockReconciler,
    StockService,
    VariantService,
    WeightGroupStore,
    WeightPayload,
)
from storefront.infrastructure.database import get_session

router = APIRouter(prefix="/products", tags=["Products"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]

ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# ============================================================================
# Converters
# ============================================================================


def to_binding_spec(request: BindingRequest) -> BindingSpec:
    """Convert a binding request to a BindingSpec."""
    return BindingSpec(
        attribute_id=request.attribute_id,
        controls_pricing=request.controls_pricing,
        controls_media=request.controls_media,
        controls_weight=request.controls_weight,
    )


def to_price_item(request: PriceGroupRequest) -> GroupItem:
    """Convert a price group request to a GroupItem."""
    return GroupItem(
        combination=request.combination,
        payload=PricePayload(
            price=request.price,
            cost=request.cost,
            sale_price=request.sale_price,
        ),
    )


def to_weight_item(request: WeightGroupRequest) -> GroupItem:
    """Convert a weight group request to a GroupItem."""
    return GroupItem(
        combination=request.combination,
        payload=WeightPayload(
            weight=request.weight,
            length=request.length,
            width=request.width,
            height=request.height,
        ),
    )


def to_media_item(request: MediaSyncItemRequest) -> MediaSyncItem:
    """Convert a media sync request item to a MediaSyncItem."""
    return MediaSyncItem(
        media_id=request.media_id,
        combination=request.combination,
        sort_order=request.sort_order,
        is_primary=request.is_primary,
        is_group_primary=request.is_group_primary,
    )


# ============================================================================
# Attribute Bindings
# ============================================================================


@router.get(
    "/{product_id}/attributes",
    response_model=list[BindingResponse],
    summary="List attribute bindings",
)
async def list_bindings(product_id: int, session: SessionDep) -> list[BindingResponse]:
    """Get the attributes bound to a product and the facets they control."""
    bindings = await AttributeBindingService(session).get_bindings(product_id)
    return [BindingResponse(**b.to_dict()) for b in bindings]


@router.put(
    "/{product_id}/attributes",
    response_model=list[BindingResponse],
    responses=ERRORS,
    summary="Upsert attribute bindings",
    description="Add or re-tag attributes, then prune stale groups and reconcile stock.",
)
async def upsert_bindings(
    product_id: int,
    request: BindingsUpdateRequest,
    session: SessionDep,
) -> list[BindingResponse]:
    """Add or re-tag attribute bindings.

    Args:
        product_id: Product ID.
        request: Bindings to write.
        session: Database session.

    Returns:
        All bindings of the product.
    """
    bindings = await AttributeBindingService(session).upsert_bindings(
        product_id, [to_binding_spec(a) for a in request.attributes]
    )
    return [BindingResponse(**b.to_dict()) for b in bindings]


@router.delete(
    "/{product_id}/attributes/{attribute_id}",
    response_model=RecomputeResponse,
    responses=ERRORS,
    summary="Detach attribute",
)
async def remove_binding(product_id: int, attribute_id: int, session: SessionDep) -> RecomputeResponse:
    """Detach an attribute and report pruned groups and stock changes."""
    result = await AttributeBindingService(session).remove_binding(product_id, attribute_id)
    return RecomputeResponse(
        pruned=result.pruned,
        stock=ReconcileResponse(**result.stock.to_dict()),
    )


# ============================================================================
# Price Groups
# ============================================================================


@router.get(
    "/{product_id}/price-groups",
    response_model=list[PriceGroupResponse],
    summary="List price groups",
)
async def list_price_groups(product_id: int, session: SessionDep) -> list[PriceGroupResponse]:
    """Get every price group of a product."""
    groups = await PriceGroupStore(session).get_groups_for_product(product_id)
    return [PriceGroupResponse(**g.to_dict()) for g in groups]


@router.post(
    "/{product_id}/price-groups",
    response_model=PriceGroupResponse,
    responses=ERRORS,
    summary="Find or create price group",
    description="Create the group for a combination, or update its price when it exists.",
)
async def upsert_price_group(
    product_id: int,
    request: PriceGroupRequest,
    session: SessionDep,
) -> PriceGroupResponse:
    """Find or create one price group."""
    item = to_price_item(request)
    group = await PriceGroupStore(session).find_or_create(product_id, item.combination, item.payload)
    return PriceGroupResponse(**group.to_dict())


@router.put(
    "/{product_id}/price-groups",
    response_model=list[PriceGroupResponse],
    responses=ERRORS,
    summary="Replace price groups",
)
async def replace_price_groups(
    product_id: int,
    request: PriceGroupsReplaceRequest,
    session: SessionDep,
) -> list[PriceGroupResponse]:
    """Replace all price groups of a product."""
    groups = await PriceGroupStore(session).bulk_create(
        product_id, [to_price_item(g) for g in request.groups]
    )
    return [PriceGroupResponse(**g.to_dict()) for g in groups]


# ============================================================================
# Weight Groups
# ============================================================================


@router.get(
    "/{product_id}/weight-groups",
    response_model=list[WeightGroupResponse],
    summary="List weight groups",
)
async def list_weight_groups(product_id: int, session: SessionDep) -> list[WeightGroupResponse]:
    """Get every weight group of a product."""
    groups = await WeightGroupStore(session).get_groups_for_product(product_id)
    return [WeightGroupResponse(**g.to_dict()) for g in groups]


@router.post(
    "/{product_id}/weight-groups",
    response_model=WeightGroupResponse,
    responses=ERRORS,
    summary="Find or create weight group",
)
async def upsert_weight_group(
    product_id: int,
    request: WeightGroupRequest,
    session: SessionDep,
) -> WeightGroupResponse:
    """Find or create one weight group."""
    item = to_weight_item(request)
    group = await WeightGroupStore(session).find_or_create(product_id, item.combination, item.payload)
    return WeightGroupResponse(**group.to_dict())


@router.put(
    "/{product_id}/weight-groups",
    response_model=list[WeightGroupResponse],
    responses=ERRORS,
    summary="Replace weight groups",
)
async def replace_weight_groups(
    product_id: int,
    request: WeightGroupsReplaceRequest,
    session: SessionDep,
) -> list[WeightGroupResponse]:
    """Replace all weight groups of a product."""
    groups = await WeightGroupStore(session).bulk_create(
        product_id, [to_weight_item(g) for g in request.groups]
    )
    return [WeightGroupResponse(**g.to_dict()) for g in groups]


# ============================================================================
# Media
# ============================================================================


@router.get(
    "/{product_id}/media",
    response_model=list[MediaResponse],
    summary="List product media",
)
async def list_media(product_id: int, session: SessionDep) -> list[MediaResponse]:
    """Get media linked to a product in display order."""
    media = await MediaGroupStore(session).get_media_for_product(product_id)
    return [MediaResponse(**m.to_dict()) for m in media]


@router.put(
    "/{product_id}/media",
    response_model=list[MediaResponse],
    responses=ERRORS,
    summary="Sync product media",
    description="Replace the product's media list. Media not listed is unlinked.",
)
async def sync_media(
    product_id: int,
    request: MediaSyncRequest,
    session: SessionDep,
) -> list[MediaResponse]:
    """Sync a product's media.

    Args:
        product_id: Product ID.
        request: Full media list.
        session: Database session.

    Returns:
        Product media after the sync.
    """
    media = await MediaGroupStore(session).sync_product_media(
        product_id, [to_media_item(m) for m in request.media]
    )
    return [MediaResponse(**m.to_dict()) for m in media]


@router.get(
    "/{product_id}/media-groups",
    response_model=list[MediaGroupResponse],
    summary="List media groups",
)
async def list_media_groups(product_id: int, session: SessionDep) -> list[MediaGroupResponse]:
    """Get media groups with their media."""
    groups = await MediaGroupStore(session).get_media_groups_for_product(product_id)
    return [MediaGroupResponse(**g.to_dict()) for g in groups]


# ============================================================================
# Variants & Stock
# ============================================================================


@router.get(
    "/{product_id}/variants",
    response_model=list[VariantResponse],
    summary="List variants",
)
async def list_variants(product_id: int, session: SessionDep) -> list[VariantResponse]:
    """Get every variant of a product."""
    variants = await VariantService(session).list_variants(product_id)
    return [VariantResponse(**v.to_dict()) for v in variants]


@router.get(
    "/{product_id}/stock",
    response_model=list[StockResponse],
    summary="List stock",
)
async def list_stock(product_id: int, session: SessionDep) -> list[StockResponse]:
    """Get every stock row of a product, simple row first."""
    stock = await StockService(session).get_all_stock(product_id)
    return [StockResponse(**s.to_dict()) for s in stock]


@router.put(
    "/{product_id}/stock",
    response_model=StockResponse,
    responses=ERRORS,
    summary="Set simple stock",
)
async def set_simple_stock(
    product_id: int,
    request: StockSetRequest,
    session: SessionDep,
) -> StockResponse:
    """Set the product-level stock quantity."""
    stock = await StockService(session).set_simple_stock(product_id, request.quantity)
    return StockResponse(**stock.to_dict())


@router.put(
    "/{product_id}/stock/combination",
    response_model=StockResponse,
    responses=ERRORS,
    summary="Set stock by combination",
)
async def set_combination_stock(
    product_id: int,
    request: CombinationStockRequest,
    session: SessionDep,
) -> StockResponse:
    """Set stock for the variant with the given full combination."""
    stock = await StockService(session).set_stock_by_combination(
        product_id, request.combination, request.quantity
    )
    return StockResponse(**stock.to_dict())


@router.put(
    "/{product_id}/variants/{variant_id}/stock",
    response_model=StockResponse,
    responses=ERRORS,
    summary="Set variant stock",
)
async def set_variant_stock(
    product_id: int,
    variant_id: int,
    request: StockSetRequest,
    session: SessionDep,
) -> StockResponse:
    """Set one variant's stock quantity."""
    stock = await StockService(session).set_variant_stock(product_id, variant_id, request.quantity)
    return StockResponse(**stock.to_dict())


@router.post(
    "/{product_id}/stock/reconcile",
    response_model=ReconcileResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Reconcile stock matrix",
)
async def reconcile_stock(product_id: int, session: SessionDep) -> ReconcileResponse:
    """Bring variants and stock rows in line with the bound attributes."""
    result = await StockReconciler(session).reconcile(product_id)
    return ReconcileResponse(**result.to_dict())


# ============================================================================
# Combined Update
# ============================================================================


@router.get(
    "/{product_id}/catalog",
    response_model=CatalogResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get catalog snapshot",
)
async def get_catalog(product_id: int, session: SessionDep) -> CatalogResponse:
    """Get all grouping data of a product."""
    snapshot = await ProductCatalogService(session).snapshot(product_id)
    return CatalogResponse(**snapshot.to_dict())


@router.put(
    "/{product_id}/catalog",
    response_model=CatalogResponse,
    status_code=status.HTTP_200_OK,
    responses=ERRORS,
    summary="Apply product update",
    description=(
        "Write bindings, price groups, weight groups, media and stock in one "
        "transaction, in that order."
    ),
)
async def apply_catalog(
    product_id: int,
    request: ProductUpdateRequest,
    session: SessionDep,
) -> CatalogResponse:
    """Apply a combined product update.

    Args:
        product_id: Product ID.
        request: Sections to write; omitted sections are left alone.
        session: Database session.

    Returns:
        Catalog snapshot after the update.
    """
    update = ProductUpdate(
        attributes=(
            [to_binding_spec(a) for a in request.attributes]
            if request.attributes is not None
            else None
        ),
        price_groups=(
            [to_price_item(g) for g in request.price_groups]
            if request.price_groups is not None
            else None
        ),
        replace_price_groups=request.replace_price_groups,
        weight_groups=(
            [to_weight_item(g) for g in request.weight_groups]
            if request.weight_groups is not None
            else None
        ),
        replace_weight_groups=request.replace_weight_groups,
        media=[to_media_item(m) for m in request.media] if request.media is not None else None,
        simple_stock=request.simple_stock,
        variant_stock=[
            CombinationStock(combination=s.combination, quantity=s.quantity)
            for s in request.variant_stock
        ],
    )
    snapshot = await ProductCatalogService(session).apply(product_id, update)
    return CatalogResponse(**snapshot.to_dict())
