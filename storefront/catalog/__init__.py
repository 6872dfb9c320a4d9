"""Attribute-combination grouping engine.

Keeps price, weight and media data per distinct combination of a product's
attribute values, reconciles the stock matrix as attributes change, and
resolves a variant to the groups that govern it.
"""

from storefront.catalog.bindings import AttributeBindingService, BindingSpec
from storefront.catalog.groups import (
    GroupItem,
    GroupStore,
    PriceGroupStore,
    PricePayload,
    WeightGroupStore,
    WeightPayload,
)
from storefront.catalog.locks import ProductLockRegistry, product_locks
from storefront.catalog.media import MediaGroupStore, MediaOrder, MediaSyncItem
from storefront.catalog.resolver import FacetResolver, VariantResolution
from storefront.catalog.service import CombinationStock, ProductCatalogService, ProductUpdate
from storefront.catalog.stock import ReconcileResult, StockLevel, StockReconciler, StockService
from storefront.catalog.variants import VariantService

__all__ = [
    # Bindings
    "AttributeBindingService",
    "BindingSpec",
    # Group stores
    "GroupItem",
    "GroupStore",
    "MediaGroupStore",
    "MediaOrder",
    "MediaSyncItem",
    "PriceGroupStore",
    "PricePayload",
    "WeightGroupStore",
    "WeightPayload",
    # Locks
    "ProductLockRegistry",
    "product_locks",
    # Variants & stock
    "ReconcileResult",
    "StockLevel",
    "StockReconciler",
    "StockService",
    "VariantService",
    # Read path
    "FacetResolver",
    "VariantResolution",
    # Orchestration
    "CombinationStock",
    "ProductCatalogService",
    "ProductUpdate",
]
