"""Variant to facet resolution.

Each facet is resolved on its own: the variant's full combination is cut
down to the attributes that control that facet, then matched against that
facet's groups. Price may follow Color while weight follows Size.
"""

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.groups import PriceGroupStore, WeightGroupStore
from storefront.catalog.media import MediaGroupStore
from storefront.catalog.models import (
    Media,
    ProductMediaGroup,
    ProductPriceGroup,
    ProductStock,
    ProductWeightGroup,
)
from storefront.catalog.repository import GroupRecord, StockRepository, VariantRepository
from storefront.domain.combination import Facet
from storefront.domain.exceptions import NotFoundError, PricingNotConfiguredError

logger = structlog.get_logger()


@dataclass
class VariantResolution:
    """Everything a storefront or cart needs to show and sell one variant.

    Any facet may be None when the product has no group for it.
    """

    variant_id: int
    product_id: int
    price: GroupRecord[ProductPriceGroup] | None
    weight: GroupRecord[ProductWeightGroup] | None
    media_group: GroupRecord[ProductMediaGroup] | None
    media: list[Media]
    stock: ProductStock | None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "variant_id": self.variant_id,
            "product_id": self.product_id,
            "price": self.price.to_dict() if self.price else None,
            "weight": self.weight.to_dict() if self.weight else None,
            "media_group": (
                {**self.media_group.to_dict(), "media": [m.to_dict() for m in self.media]}
                if self.media_group
                else None
            ),
            "stock": self.stock.to_dict() if self.stock else None,
        }


class FacetResolver:
    """Resolves a variant to its price, weight, media and stock."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.prices = PriceGroupStore(session)
        self.weights = WeightGroupStore(session)
        self.media = MediaGroupStore(session)
        self.variants = VariantRepository(session)
        self.stock = StockRepository(session)

    async def resolve(self, variant_id: int) -> VariantResolution:
        """Resolve every facet of a variant.

        Raises:
            NotFoundError: If the variant does not exist.
        """
        variant = await self.variants.get(variant_id)
        if variant is None:
            raise NotFoundError("ProductVariant", variant_id)

        price = await self.prices.resolve_for_variant(variant_id)
        weight = await self.weights.resolve_for_variant(variant_id)
        media_group = await self.media.resolve_for_variant(variant_id)
        media = await self.media.media.list_for_group(media_group.id) if media_group else []
        stock = await self.stock.get(variant.product_id, variant_id)

        logger.debug(
            "Variant resolved",
            variant_id=variant_id,
            price_group_id=price.id if price else None,
            weight_group_id=weight.id if weight else None,
            media_group_id=media_group.id if media_group else None,
        )
        return VariantResolution(
            variant_id=variant_id,
            product_id=variant.product_id,
            price=price,
            weight=weight,
            media_group=media_group,
            media=media,
            stock=stock,
        )

    async def require_price(self, variant_id: int) -> GroupRecord[ProductPriceGroup]:
        """Price group for checkout; a missing group fails instead of defaulting to zero.

        Raises:
            PricingNotConfiguredError: If no price group matches the variant.
        """
        price = await self.prices.resolve_for_variant(variant_id)
        if price is None:
            raise PricingNotConfiguredError(Facet.PRICE.value, variant_id)
        return price

    async def require_weight(self, variant_id: int) -> GroupRecord[ProductWeightGroup]:
        """Weight group for shipping; a missing group fails instead of defaulting to zero.

        Raises:
            PricingNotConfiguredError: If no weight group matches the variant.
        """
        weight = await self.weights.resolve_for_variant(variant_id)
        if weight is None:
            raise PricingNotConfiguredError(Facet.WEIGHT.value, variant_id)
        return weight
