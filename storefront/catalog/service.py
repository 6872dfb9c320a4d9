"""Product catalog orchestration.

Applies one product update request across every component in a fixed
order: bindings, stock matrix, price groups, weight groups, media, stock
quantities. The request's session is the transaction; nothing here commits.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.bindings import AttributeBindingService, BindingSpec
from storefront.catalog.groups import GroupItem, PriceGroupStore, WeightGroupStore
from storefront.catalog.locks import product_locks
from storefront.catalog.media import MediaGroupStore, MediaSyncItem
from storefront.catalog.repository import ProductRepository, VariantRepository
from storefront.catalog.stock import StockReconciler, StockService
from storefront.domain.exceptions import NotFoundError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CombinationStock:
    """Quantity for the variant with this full combination."""

    combination: Mapping[Any, Any]
    quantity: int


@dataclass
class ProductUpdate:
    """One product write request. Sections left as None are not touched.

    Attributes:
        attributes: Bindings to add or re-tag.
        price_groups: Price groups to write.
        replace_price_groups: Replace all price groups instead of upserting.
        weight_groups: Weight groups to write.
        replace_weight_groups: Replace all weight groups instead of upserting.
        media: Full media list for the product.
        simple_stock: Quantity of the product-level stock row.
        variant_stock: Quantities by full combination.
    """

    attributes: list[BindingSpec] | None = None
    price_groups: list[GroupItem] | None = None
    replace_price_groups: bool = False
    weight_groups: list[GroupItem] | None = None
    replace_weight_groups: bool = False
    media: list[MediaSyncItem] | None = None
    simple_stock: int | None = None
    variant_stock: list[CombinationStock] = field(default_factory=list)


@dataclass
class CatalogSnapshot:
    """Everything the engine stores for one product.

    This is also the read an indexer uses to compute price ranges.
    """

    product_id: int
    attributes: list[dict[str, Any]]
    price_groups: list[dict[str, Any]]
    weight_groups: list[dict[str, Any]]
    media_groups: list[dict[str, Any]]
    variants: list[dict[str, Any]]
    stock: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "product_id": self.product_id,
            "attributes": self.attributes,
            "price_groups": self.price_groups,
            "weight_groups": self.weight_groups,
            "media_groups": self.media_groups,
            "variants": self.variants,
            "stock": self.stock,
        }


class ProductCatalogService:
    """Service for applying product updates to the grouping engine."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize service with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session
        self.products = ProductRepository(session)
        self.variants = VariantRepository(session)
        self.bindings = AttributeBindingService(session)
        self.reconciler = StockReconciler(session)
        self.prices = PriceGroupStore(session)
        self.weights = WeightGroupStore(session)
        self.media = MediaGroupStore(session)
        self.stock = StockService(session)

    async def apply(self, product_id: int, update: ProductUpdate) -> CatalogSnapshot:
        """Apply an update request.

        Args:
            product_id: Product ID.
            update: Sections to write.

        Returns:
            The product's catalog data after the update.

        Raises:
            NotFoundError: If the product does not exist.
            DomainError: Any validation failure from the components; the
                request session rolls back everything written before it.
        """
        if await self.products.get_by_id(product_id) is None:
            raise NotFoundError("Product", product_id)

        async with product_locks.hold(self.session, product_id):
            if update.attributes is not None:
                await self.bindings.upsert_bindings(product_id, update.attributes)
            else:
                await self.reconciler.reconcile(product_id)

            if update.price_groups is not None:
                if update.replace_price_groups:
                    await self.prices.bulk_create(product_id, update.price_groups)
                else:
                    await self.prices.upsert_many(product_id, update.price_groups)

            if update.weight_groups is not None:
                if update.replace_weight_groups:
                    await self.weights.bulk_create(product_id, update.weight_groups)
                else:
                    await self.weights.upsert_many(product_id, update.weight_groups)

            if update.media is not None:
                await self.media.sync_product_media(product_id, update.media)

            if update.simple_stock is not None:
                await self.stock.set_simple_stock(product_id, update.simple_stock)
            for entry in update.variant_stock:
                await self.stock.set_stock_by_combination(
                    product_id, entry.combination, entry.quantity
                )

        logger.info(
            "Product catalog updated",
            product_id=product_id,
            attributes=update.attributes is not None,
            price_groups=len(update.price_groups or []),
            weight_groups=len(update.weight_groups or []),
            media=len(update.media or []),
            variant_stock=len(update.variant_stock),
        )
        return await self.snapshot(product_id)

    async def snapshot(self, product_id: int) -> CatalogSnapshot:
        """Read all catalog data of a product.

        Raises:
            NotFoundError: If the product does not exist.
        """
        if await self.products.get_by_id(product_id) is None:
            raise NotFoundError("Product", product_id)

        return CatalogSnapshot(
            product_id=product_id,
            attributes=[b.to_dict() for b in await self.bindings.get_bindings(product_id)],
            price_groups=[g.to_dict() for g in await self.prices.get_groups_for_product(product_id)],
            weight_groups=[g.to_dict() for g in await self.weights.get_groups_for_product(product_id)],
            media_groups=[
                g.to_dict() for g in await self.media.get_media_groups_for_product(product_id)
            ],
            variants=[v.to_dict() for v in await self.variants.list_for_product(product_id)],
            stock=[s.to_dict() for s in await self.stock.get_all_stock(product_id)],
        )
