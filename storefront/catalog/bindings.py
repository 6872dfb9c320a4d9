"""Product attribute bindings.

A binding attaches an attribute to a product and says which facets it
controls. Every binding change is followed by a recompute: groups keyed on
an attribute that no longer controls their facet are pruned, and the stock
matrix is reconciled against the new attribute set.
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.groups import PriceGroupStore, WeightGroupStore
from storefront.catalog.locks import product_locks
from storefront.catalog.media import MediaGroupStore
from storefront.catalog.models import ProductAttribute
from storefront.catalog.repository import AttributeRepository, BindingRepository, ProductRepository
from storefront.catalog.stock import ReconcileResult, StockReconciler
from storefront.domain.exceptions import InvalidPayloadError, NotFoundError

logger = structlog.get_logger()


@dataclass(frozen=True)
class BindingSpec:
    """Requested binding. A None flag keeps the stored value (False for new bindings)."""

    attribute_id: int
    controls_pricing: bool | None = None
    controls_media: bool | None = None
    controls_weight: bool | None = None


@dataclass
class RecomputeResult:
    """Groups pruned per facet and the stock reconciliation outcome."""

    pruned: dict[str, int]
    stock: ReconcileResult


class AttributeBindingService:
    """Adds, re-tags and detaches product attributes."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize service with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session
        self.products = ProductRepository(session)
        self.attributes = AttributeRepository(session)
        self.bindings = BindingRepository(session)
        self.stores = (PriceGroupStore(session), WeightGroupStore(session), MediaGroupStore(session))
        self.reconciler = StockReconciler(session)

    async def get_bindings(self, product_id: int) -> list[ProductAttribute]:
        """Get a product's bindings ordered by attribute ID."""
        return await self.bindings.list_for_product(product_id)

    async def upsert_bindings(
        self,
        product_id: int,
        specs: Sequence[BindingSpec],
    ) -> list[ProductAttribute]:
        """Add new bindings and re-tag existing ones.

        Bindings not mentioned in ``specs`` are left alone.

        Args:
            product_id: Product ID.
            specs: Bindings to add or update.

        Returns:
            All bindings of the product after the change.

        Raises:
            NotFoundError: If the product or an attribute does not exist.
            InvalidPayloadError: If an attribute is listed twice.
        """
        if await self.products.get_by_id(product_id) is None:
            raise NotFoundError("Product", product_id)

        repeated = sorted(a for a, n in Counter(s.attribute_id for s in specs).items() if n > 1)
        if repeated:
            raise InvalidPayloadError("attribute_id", f"listed more than once: {repeated}")

        known = await self.attributes.get_attributes(s.attribute_id for s in specs)
        for spec in specs:
            if spec.attribute_id not in known:
                raise NotFoundError("Attribute", spec.attribute_id)

        async with product_locks.hold(self.session, product_id):
            for spec in specs:
                binding = await self.bindings.get(product_id, spec.attribute_id)
                if binding is None:
                    binding = ProductAttribute(
                        product_id=product_id,
                        attribute_id=spec.attribute_id,
                        controls_pricing=bool(spec.controls_pricing),
                        controls_media=bool(spec.controls_media),
                        controls_weight=bool(spec.controls_weight),
                    )
                else:
                    if spec.controls_pricing is not None:
                        binding.controls_pricing = spec.controls_pricing
                    if spec.controls_media is not None:
                        binding.controls_media = spec.controls_media
                    if spec.controls_weight is not None:
                        binding.controls_weight = spec.controls_weight
                await self.bindings.save(binding)

            logger.info(
                "Bindings upserted",
                product_id=product_id,
                attribute_ids=[s.attribute_id for s in specs],
            )
            await self.recompute(product_id)

        return await self.bindings.list_for_product(product_id)

    async def remove_binding(self, product_id: int, attribute_id: int) -> RecomputeResult:
        """Detach an attribute from a product.

        Raises:
            NotFoundError: If the attribute is not bound to the product.
        """
        async with product_locks.hold(self.session, product_id):
            binding = await self.bindings.get(product_id, attribute_id)
            if binding is None:
                raise NotFoundError("ProductAttribute", attribute_id, {"product_id": product_id})
            await self.bindings.delete(binding)
            logger.info("Binding removed", product_id=product_id, attribute_id=attribute_id)
            return await self.recompute(product_id)

    async def recompute(self, product_id: int) -> RecomputeResult:
        """Prune stale groups from every facet store, then reconcile stock."""
        async with product_locks.hold(self.session, product_id):
            pruned = {store.facet.value: await store.prune_stale(product_id) for store in self.stores}
            stock = await self.reconciler.reconcile(product_id)
        return RecomputeResult(pruned=pruned, stock=stock)
