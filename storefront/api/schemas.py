"""API schemas for the storefront catalog.

Pydantic models for request/response validation and serialization.
Combinations travel as JSON objects mapping attribute ID to attribute
value ID, e.g. ``{"3": 7, "5": 12}``; an empty object is the simple
combination.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Offending IDs and combinations"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


Combination = dict[int, int]


# ============================================================================
# Binding Schemas
# ============================================================================


class BindingRequest(BaseModel):
    """Attribute to bind or re-tag. Omitted flags keep their current value."""

    attribute_id: int = Field(..., description="Attribute ID")
    controls_pricing: bool | None = Field(default=None, description="Attribute splits prices")
    controls_media: bool | None = Field(default=None, description="Attribute splits media")
    controls_weight: bool | None = Field(default=None, description="Attribute splits weights")


class BindingsUpdateRequest(BaseModel):
    """Request to upsert attribute bindings."""

    attributes: list[BindingRequest] = Field(..., description="Bindings to add or re-tag")


class BindingResponse(BaseModel):
    """Attribute binding."""

    id: int
    product_id: int
    attribute_id: int
    controls_pricing: bool
    controls_media: bool
    controls_weight: bool


# ============================================================================
# Group Schemas
# ============================================================================


class PriceGroupRequest(BaseModel):
    """Price for one pricing combination."""

    combination: Combination = Field(default_factory=dict, description="Attribute ID to value ID")
    cost: Decimal = Field(default=Decimal("0"), description="Unit cost")
    price: Decimal = Field(..., description="Selling price")
    sale_price: Decimal | None = Field(default=None, description="Discounted price")


class PriceGroupsReplaceRequest(BaseModel):
    """Full set of price groups for a product."""

    groups: list[PriceGroupRequest]


class PriceGroupResponse(BaseModel):
    """Price group."""

    id: int
    product_id: int
    combination: dict[str, int]
    cost: str
    price: str
    sale_price: str | None = None


class WeightGroupRequest(BaseModel):
    """Weight and dimensions for one weight combination."""

    combination: Combination = Field(default_factory=dict, description="Attribute ID to value ID")
    weight: Decimal = Field(..., description="Shipping weight")
    length: Decimal | None = None
    width: Decimal | None = None
    height: Decimal | None = None


class WeightGroupsReplaceRequest(BaseModel):
    """Full set of weight groups for a product."""

    groups: list[WeightGroupRequest]


class WeightGroupResponse(BaseModel):
    """Weight group."""

    id: int
    product_id: int
    combination: dict[str, int]
    weight: str
    length: str | None = None
    width: str | None = None
    height: str | None = None


# ============================================================================
# Media Schemas
# ============================================================================


class MediaSyncItemRequest(BaseModel):
    """One media row in a sync request."""

    media_id: int = Field(..., description="Uploaded media ID")
    combination: Combination = Field(default_factory=dict, description="Media combination")
    sort_order: int = Field(default=0, description="Display position")
    is_primary: bool = Field(default=False, description="Product main image")
    is_group_primary: bool = Field(default=False, description="Main image of the media group")


class MediaSyncRequest(BaseModel):
    """Full media list for a product."""

    media: list[MediaSyncItemRequest]


class MediaResponse(BaseModel):
    """Media row."""

    id: int
    url: str | None = None
    type: str
    alt_text: str | None = None
    product_id: int | None = None
    media_group_id: int | None = None
    sort_order: int
    is_primary: bool
    is_group_primary: bool


class MediaGroupResponse(BaseModel):
    """Media group with its media."""

    id: int
    product_id: int
    combination: dict[str, int]
    media: list[MediaResponse]


class MediaOrderRequest(BaseModel):
    """New sort position for one media row."""

    media_id: int
    sort_order: int


class MediaReorderRequest(BaseModel):
    """Request to reorder media."""

    items: list[MediaOrderRequest]


# ============================================================================
# Variant & Stock Schemas
# ============================================================================


class VariantResponse(BaseModel):
    """Variant with its full combination."""

    id: int
    product_id: int
    is_active: bool
    combination: dict[str, int]


class VariantUpdateRequest(BaseModel):
    """Request to toggle a variant."""

    is_active: bool


class StockResponse(BaseModel):
    """Stock row."""

    id: int
    product_id: int
    variant_id: int | None = None
    quantity: int
    reserved_quantity: int
    low_stock_threshold: int
    is_out_of_stock: bool


class StockSetRequest(BaseModel):
    """Request to set a stock quantity."""

    quantity: int = Field(..., ge=0, description="Units on hand")


class CombinationStockRequest(BaseModel):
    """Request to set stock by full combination."""

    combination: Combination = Field(..., description="Value for every bound attribute")
    quantity: int = Field(..., ge=0, description="Units on hand")


class ReconcileResponse(BaseModel):
    """Stock matrix reconciliation result."""

    created: int
    deleted: int
    kept: int


class RecomputeResponse(BaseModel):
    """Effect of a binding change on groups and stock."""

    pruned: dict[str, int] = Field(..., description="Stale groups removed per facet")
    stock: ReconcileResponse


# ============================================================================
# Resolution Schemas
# ============================================================================


class VariantResolutionResponse(BaseModel):
    """Groups and stock that govern one variant."""

    variant_id: int
    product_id: int
    price: PriceGroupResponse | None = None
    weight: WeightGroupResponse | None = None
    media_group: MediaGroupResponse | None = None
    stock: StockResponse | None = None


# ============================================================================
# Product Update Schemas
# ============================================================================


class ProductUpdateRequest(BaseModel):
    """One product write touching any subset of the catalog sections."""

    attributes: list[BindingRequest] | None = None
    price_groups: list[PriceGroupRequest] | None = None
    replace_price_groups: bool = False
    weight_groups: list[WeightGroupRequest] | None = None
    replace_weight_groups: bool = False
    media: list[MediaSyncItemRequest] | None = None
    simple_stock: int | None = Field(default=None, ge=0)
    variant_stock: list[CombinationStockRequest] = Field(default_factory=list)


class CatalogResponse(BaseModel):
    """All catalog data of a product."""

    product_id: int
    attributes: list[BindingResponse]
    price_groups: list[PriceGroupResponse]
    weight_groups: list[WeightGroupResponse]
    media_groups: list[MediaGroupResponse]
    variants: list[VariantResponse]
    stock: list[StockResponse]
