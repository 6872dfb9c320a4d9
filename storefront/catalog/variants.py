"""Variant reads and edits.

Variants are created and deleted only by the stock reconciler; this
service looks them up and toggles their active flag.
"""

from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.locks import product_locks
from storefront.catalog.repository import VariantRecord, VariantRepository
from storefront.domain.combination import CombinationKey
from storefront.domain.exceptions import NotFoundError

logger = structlog.get_logger()


class VariantService:
    """Service for looking up a product's variants."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.variants = VariantRepository(session)

    async def list_variants(self, product_id: int) -> list[VariantRecord]:
        """Get every variant of a product with its full combination."""
        return await self.variants.list_for_product(product_id)

    async def get_variant(self, variant_id: int) -> VariantRecord:
        """Get a variant.

        Raises:
            NotFoundError: If the variant does not exist.
        """
        variant = await self.variants.get(variant_id)
        if variant is None:
            raise NotFoundError("ProductVariant", variant_id)
        return variant

    async def find_by_combination(
        self,
        product_id: int,
        combination: Mapping[Any, Any],
    ) -> VariantRecord | None:
        """Find the variant whose full combination equals ``combination``."""
        return await self.variants.get_by_key(product_id, CombinationKey.from_mapping(combination))

    async def set_active(self, variant_id: int, is_active: bool) -> VariantRecord:
        """Enable or disable a variant without touching its stock."""
        record = await self.get_variant(variant_id)
        async with product_locks.hold(self.session, record.product_id):
            record.variant.is_active = is_active
            await self.session.flush()
        logger.info("Variant updated", variant_id=variant_id, is_active=is_active)
        return record
