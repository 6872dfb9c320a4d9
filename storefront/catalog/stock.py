"""Stock matrix reconciliation and stock quantities.

Stock is keyed by a product's full combination: one variant (and one stock
row) per element of the Cartesian product of the active values of every
bound attribute, whatever facets those attributes control. A product with
no bound attributes only has its ``variant_id IS NULL`` row.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from itertools import product as cartesian_product
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.locks import product_locks
from storefront.catalog.models import ProductStock
from storefront.catalog.repository import (
    AttributeRepository,
    BindingRepository,
    CombinationStockRepository,
    ProductRepository,
    StockRepository,
    VariantRepository,
)
from storefront.domain.combination import CombinationKey
from storefront.domain.exceptions import (
    InsufficientStockError,
    InvalidCombinationError,
    InvalidPayloadError,
    NotFoundError,
)
from storefront.infrastructure.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation pass, counted in combinations."""

    created: int
    deleted: int
    kept: int

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return {"created": self.created, "deleted": self.deleted, "kept": self.kept}


@dataclass(frozen=True)
class StockLevel:
    """Sellable stock for a product or variant."""

    available: bool
    quantity: int


def _new_stock(product_id: int, variant_id: int | None, quantity: int = 0) -> ProductStock:
    return ProductStock(
        product_id=product_id,
        variant_id=variant_id,
        quantity=quantity,
        reserved_quantity=0,
        low_stock_threshold=settings.default_low_stock_threshold,
    )


def _check_quantity(quantity: int) -> None:
    if quantity < 0:
        raise InvalidPayloadError("quantity", "must not be negative")


# ============================================================================
# Reconciler
# ============================================================================


class StockReconciler:
    """Keeps variants and stock rows in step with the bound attributes.

    Example usage:
        result = await StockReconciler(session).reconcile(product_id)
        logger.info("Reconciled", **result.to_dict())
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize reconciler with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session
        self.products = ProductRepository(session)
        self.attributes = AttributeRepository(session)
        self.bindings = BindingRepository(session)
        self.variants = VariantRepository(session)
        self.stock = StockRepository(session)
        self.combination_stock = CombinationStockRepository(session)

    async def target_keys(self, product_id: int) -> list[CombinationKey]:
        """Full combinations the product should currently have.

        Attributes are taken in ID order so generation is stable. An
        attribute with no active values empties the whole matrix.
        """
        attribute_ids = sorted(b.attribute_id for b in await self.bindings.list_for_product(product_id))
        if not attribute_ids:
            return []

        active = await self.attributes.get_active_values(attribute_ids)
        axes = [[(attribute_id, v.id) for v in active[attribute_id]] for attribute_id in attribute_ids]
        if any(not axis for axis in axes):
            return []
        return [CombinationKey.from_pairs(pairs) for pairs in cartesian_product(*axes)]

    async def reconcile(self, product_id: int) -> ReconcileResult:
        """Diff the variant set against the target matrix and apply the difference.

        New combinations get a variant, a zero-quantity stock row and a
        zero-quantity free-form stock row. Vanished combinations lose all
        three. Unchanged combinations are left alone, quantities included.

        Args:
            product_id: Product ID.

        Returns:
            Counts of created, deleted and kept combinations.

        Raises:
            NotFoundError: If the product does not exist.
        """
        if await self.products.get_by_id(product_id) is None:
            raise NotFoundError("Product", product_id)

        async with product_locks.hold(self.session, product_id):
            target = {key.serialize(): key for key in await self.target_keys(product_id)}
            existing = {v.key.serialize(): v for v in await self.variants.list_for_product(product_id)}

            stale = [v.id for k, v in existing.items() if k not in target]
            fresh = [key for k, key in target.items() if k not in existing]
            kept = [v for k, v in existing.items() if k in target]

            await self.variants.delete_many(stale)
            created = await self.variants.create_many(product_id, fresh)

            stocked = {s.variant_id for s in await self.stock.list_for_product(product_id)}
            await self.stock.save_all(
                [
                    _new_stock(product_id, record.id)
                    for record in [*kept, *created]
                    if record.id not in stocked
                ]
            )

            rows = {r.combination_key: r for r in await self.combination_stock.list_for_product(product_id)}
            await self.combination_stock.delete_many(r.id for k, r in rows.items() if k not in target)
            await self.combination_stock.create_many(
                product_id, [key for k, key in target.items() if k not in rows]
            )

        result = ReconcileResult(created=len(fresh), deleted=len(stale), kept=len(kept))
        logger.info("Stock matrix reconciled", product_id=product_id, **result.to_dict())
        return result


# ============================================================================
# Stock Quantities
# ============================================================================


class StockService:
    """Reads and writes stock quantities for simple products and variants."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.products = ProductRepository(session)
        self.bindings = BindingRepository(session)
        self.variants = VariantRepository(session)
        self.stock = StockRepository(session)
        self.combination_stock = CombinationStockRepository(session)

    async def _sync_combination_row(self, product_id: int, key: CombinationKey, quantity: int) -> None:
        serialized = key.serialize()
        for row in await self.combination_stock.list_for_product(product_id):
            if row.combination_key == serialized:
                row.quantity = quantity
        await self.session.flush()

    async def set_simple_stock(self, product_id: int, quantity: int) -> ProductStock:
        """Set the quantity of the product-level stock row, creating it if needed."""
        _check_quantity(quantity)
        if await self.products.get_by_id(product_id) is None:
            raise NotFoundError("Product", product_id)

        async with product_locks.hold(self.session, product_id):
            stock = await self.stock.get(product_id, None)
            if stock is None:
                stock = _new_stock(product_id, None, quantity)
            else:
                stock.quantity = quantity
            await self.stock.save(stock)

        logger.info("Simple stock set", product_id=product_id, quantity=quantity)
        return stock

    async def set_variant_stock(self, product_id: int, variant_id: int, quantity: int) -> ProductStock:
        """Set the quantity of one variant.

        Raises:
            NotFoundError: If the variant does not belong to the product.
        """
        _check_quantity(quantity)
        variant = await self.variants.get(variant_id)
        if variant is None or variant.product_id != product_id:
            raise NotFoundError("ProductVariant", variant_id, {"product_id": product_id})

        async with product_locks.hold(self.session, product_id):
            stock = await self.stock.get(product_id, variant_id)
            if stock is None:
                stock = _new_stock(product_id, variant_id, quantity)
            else:
                stock.quantity = quantity
            await self.stock.save(stock)
            await self._sync_combination_row(product_id, variant.key, quantity)

        logger.info(
            "Variant stock set",
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
        )
        return stock

    async def set_stock_by_combination(
        self,
        product_id: int,
        combination: Mapping[Any, Any],
        quantity: int,
    ) -> ProductStock:
        """Set stock for the variant whose full combination is ``combination``.

        The combination must name every bound attribute. Variants are only
        created by reconciliation, so an unknown combination is NotFound.
        """
        key = CombinationKey.from_mapping(combination)
        bound = {b.attribute_id for b in await self.bindings.list_for_product(product_id)}
        if key.attribute_ids != bound:
            raise InvalidCombinationError(
                "stock combinations must name every bound attribute exactly once",
                product_id=product_id,
                combination=key.as_dict(),
            )
        variant = await self.variants.get_by_key(product_id, key)
        if variant is None:
            raise NotFoundError("ProductVariant", str(key), {"product_id": product_id})
        return await self.set_variant_stock(product_id, variant.id, quantity)

    async def get_all_stock(self, product_id: int) -> list[ProductStock]:
        """Get every stock row of a product, simple row first."""
        return await self.stock.list_for_product(product_id)

    async def check_stock(self, product_id: int, variant_id: int | None = None) -> StockLevel:
        """Report sellable stock; a missing row reads as zero."""
        stock = await self.stock.get(product_id, variant_id)
        if stock is None:
            return StockLevel(available=False, quantity=0)
        return StockLevel(available=stock.available_quantity > 0, quantity=stock.available_quantity)

    async def deduct_stock(
        self,
        product_id: int,
        variant_id: int | None,
        quantity: int,
    ) -> ProductStock:
        """Remove sold units from a stock row.

        Raises:
            NotFoundError: If the stock row does not exist.
            InsufficientStockError: If fewer units are available than requested.
        """
        if quantity <= 0:
            raise InvalidPayloadError("quantity", "must be positive")

        async with product_locks.hold(self.session, product_id):
            stock = await self.stock.get(product_id, variant_id)
            if stock is None:
                raise NotFoundError(
                    "ProductStock",
                    variant_id if variant_id is not None else product_id,
                    {"product_id": product_id, "variant_id": variant_id},
                )
            if stock.available_quantity < quantity:
                raise InsufficientStockError(
                    product_id=product_id,
                    variant_id=variant_id,
                    available=stock.available_quantity,
                    requested=quantity,
                )

            stock.quantity -= quantity
            await self.stock.save(stock)
            if variant_id is not None:
                variant = await self.variants.get(variant_id)
                if variant is not None:
                    await self._sync_combination_row(product_id, variant.key, stock.quantity)

        logger.info(
            "Stock deducted",
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            remaining=stock.quantity,
        )
        return stock
