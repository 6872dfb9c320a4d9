"""Media groups and product media.

Media groups carry no payload; they are keys that uploaded media rows
attach to. Two primary flags live on the media rows themselves:
``is_primary`` (at most one per product) and ``is_group_primary`` (at most
one per media group).
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.groups import Combination, GroupStore, as_key
from storefront.catalog.locks import product_locks
from storefront.catalog.models import Media, ProductMediaGroup, ProductMediaGroupValue
from storefront.catalog.repository import GroupRecord, MediaRepository
from storefront.domain.combination import CombinationKey, Facet
from storefront.domain.exceptions import (
    ConflictingStateError,
    InvalidPayloadError,
    NotFoundError,
    PartialFailureError,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class MediaSyncItem:
    """One entry of a media sync request.

    Attributes:
        media_id: Already-uploaded media row.
        combination: Media-controlling attribute values, empty for product-level media.
        sort_order: Display position.
        is_primary: Product-wide main image.
        is_group_primary: Main image of its media group.
    """

    media_id: int
    combination: Combination = None
    sort_order: int = 0
    is_primary: bool = False
    is_group_primary: bool = False


@dataclass(frozen=True)
class MediaOrder:
    """New sort position for one media row."""

    media_id: int
    sort_order: int


@dataclass
class MediaGroupView:
    """A media group with the media attached to it."""

    group: GroupRecord[ProductMediaGroup]
    media: list[Media]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {**self.group.to_dict(), "media": [m.to_dict() for m in self.media]}


class MediaGroupStore(GroupStore[ProductMediaGroup]):
    """Media group store plus the product media operations built on it."""

    facet = Facet.MEDIA
    group_model = ProductMediaGroup
    value_model = ProductMediaGroupValue
    updates_on_match = False

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.media = MediaRepository(session)

    def payload_columns(self, payload: Any) -> dict[str, Any]:
        """Media groups have no payload columns."""
        return {}

    # ------------------------------------------------------------------
    # Group hooks
    # ------------------------------------------------------------------

    async def _before_replace(self, product_id: int) -> None:
        groups = await self.repository.list_for_product(product_id)
        await self.media.detach_from_groups(record.id for record in groups)

    async def _before_prune(self, group_ids: list[int]) -> None:
        # Media keeps its product link; only the group reference goes.
        await self.media.detach_from_groups(group_ids)

    async def resolve_for_variant(self, variant_id: int) -> GroupRecord[ProductMediaGroup] | None:
        """Media group for a variant.

        A variant whose product has no media-controlling attribute gets the
        product's simple group, created when missing. Otherwise the group
        must already exist.
        """
        product_id, key = await self.facet_key_for_variant(variant_id)
        if not key.is_simple:
            return await self.match(product_id, key)
        async with product_locks.hold(self.session, product_id):
            return await self._find_or_create(product_id, key, {})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_media_for_product(self, product_id: int) -> list[Media]:
        """Get media linked to a product in display order."""
        return await self.media.list_for_product(product_id)

    async def get_media_groups_for_product(self, product_id: int) -> list[MediaGroupView]:
        """Get every media group of a product with its media."""
        media_by_group: dict[int, list[Media]] = {}
        for media in await self.media.list_for_product(product_id):
            if media.media_group_id is not None:
                media_by_group.setdefault(media.media_group_id, []).append(media)
        return [
            MediaGroupView(group=record, media=media_by_group.get(record.id, []))
            for record in await self.repository.list_for_product(product_id)
        ]

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def _check_flags(self, items: Sequence[MediaSyncItem], keys: list[CombinationKey]) -> None:
        duplicates = sorted(
            media_id
            for media_id, count in Counter(item.media_id for item in items).items()
            if count > 1
        )
        if duplicates:
            raise InvalidPayloadError("media_id", f"listed more than once: {duplicates}")

        primaries = [item.media_id for item in items if item.is_primary]
        if len(primaries) > 1:
            raise ConflictingStateError(
                f"Product can only have one primary image, found {len(primaries)}",
                details={"media_ids": primaries},
            )

        group_primaries = Counter(
            key.serialize() for item, key in zip(items, keys) if item.is_group_primary
        )
        crowded = [k for k, count in group_primaries.items() if count > 1]
        if crowded:
            raise ConflictingStateError(
                "A media group can only have one group primary image",
                details={"combinations": [str(CombinationKey.parse(k)) for k in crowded]},
            )

    async def sync_product_media(
        self,
        product_id: int,
        items: Sequence[MediaSyncItem],
    ) -> list[Media]:
        """Replace a product's media with ``items``, keyed by media ID.

        Runs in four phases: validate everything, resolve one group per
        distinct combination, update or link each listed media row, then
        unlink product media missing from the list.

        Args:
            product_id: Product ID.
            items: Full desired media list.

        Returns:
            The product's media after the sync, in display order.

        Raises:
            ConflictingStateError: If more than one item is the global
                primary, a group has two group primaries, or a media row
                belongs to another product.
            PartialFailureError: If a media ID does not exist.
        """
        await self.require_product(product_id)
        keys = [as_key(item.combination) for item in items]
        self._check_flags(items, keys)
        await self.validate_keys(product_id, keys)

        found = await self.media.get_many(item.media_id for item in items)
        missing = [item.media_id for item in items if item.media_id not in found]
        if missing:
            raise PartialFailureError(
                "media sync",
                [
                    {"media_id": media_id, "error_code": NotFoundError.error_code}
                    for media_id in missing
                ],
            )
        foreign = [
            m.id for m in found.values() if m.product_id is not None and m.product_id != product_id
        ]
        if foreign:
            raise ConflictingStateError(
                "Media is linked to another product",
                details={"media_ids": sorted(foreign)},
            )

        async with product_locks.hold(self.session, product_id):
            groups: dict[str, int] = {}
            for key in keys:
                serialized = key.serialize()
                if serialized not in groups:
                    record = await self._find_or_create(product_id, key, {})
                    groups[serialized] = record.id

            # At most one row per product may be primary at any flush
            linked = await self.media.list_for_product(product_id)
            for media in [*linked, *found.values()]:
                media.is_primary = False
            await self.media.flush()

            listed = set()
            for item, key in zip(items, keys):
                media = found[item.media_id]
                media.product_id = product_id
                media.media_group_id = groups[key.serialize()]
                media.sort_order = item.sort_order
                media.is_primary = item.is_primary
                media.is_group_primary = item.is_group_primary
                listed.add(media.id)

            unlinked = 0
            for media in linked:
                if media.id not in listed:
                    media.unlink()
                    unlinked += 1
            await self.media.flush()

        logger.info(
            "Product media synced",
            product_id=product_id,
            linked=len(listed),
            unlinked=unlinked,
            groups=len(groups),
        )
        return await self.media.list_for_product(product_id)

    # ------------------------------------------------------------------
    # Single-row edits
    # ------------------------------------------------------------------

    async def _get_media(self, media_id: int) -> Media:
        media = await self.media.get(media_id)
        if media is None:
            raise NotFoundError("Media", media_id)
        return media

    async def set_primary_media(self, media_id: int) -> Media:
        """Make one media row the product's primary image.

        Raises:
            NotFoundError: If the media does not exist.
            ConflictingStateError: If the media is not linked to a product.
        """
        media = await self._get_media(media_id)
        if media.product_id is None:
            raise ConflictingStateError(
                "Media is not linked to a product",
                details={"media_id": media_id},
            )
        async with product_locks.hold(self.session, media.product_id):
            for other in await self.media.list_for_product(media.product_id):
                other.is_primary = False
            await self.media.flush()
            media.is_primary = True
            await self.media.flush()
        logger.info("Primary media set", product_id=media.product_id, media_id=media_id)
        return media

    async def reorder_media(self, items: Sequence[MediaOrder]) -> None:
        """Update sort positions.

        Raises:
            PartialFailureError: If any media ID does not exist; nothing is changed.
        """
        found = await self.media.get_many(item.media_id for item in items)
        missing = [item.media_id for item in items if item.media_id not in found]
        if missing:
            raise PartialFailureError(
                "media reorder",
                [
                    {"media_id": media_id, "error_code": NotFoundError.error_code}
                    for media_id in missing
                ],
            )
        for item in items:
            found[item.media_id].sort_order = item.sort_order
        await self.media.flush()

    async def delete_media(self, media_id: int) -> None:
        """Delete a media row."""
        media = await self._get_media(media_id)
        await self.media.delete(media)
        logger.info("Media deleted", media_id=media_id, product_id=media.product_id)
