"""Tests for media groups and product media."""

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.catalog.media import MediaGroupStore, MediaOrder, MediaSyncItem
from storefront.catalog.models import Media
from storefront.catalog.repository import VariantRepository
from storefront.domain.combination import CombinationKey
from storefront.domain.exceptions import (
    ConflictingStateError,
    InvalidCombinationError,
    InvalidPayloadError,
    NotFoundError,
    PartialFailureError,
)


async def media_state(store: MediaGroupStore, product_id: int) -> list[tuple]:
    return [
        (m.id, m.product_id, m.media_group_id, m.sort_order, m.is_primary, m.is_group_primary)
        for m in await store.get_media_for_product(product_id)
    ]


class TestSyncProductMedia:
    """Tests for sync_product_media."""

    @pytest.mark.asyncio
    async def test_links_media_to_groups(self, session, ids, bind) -> None:
        """Media is linked to the product and to one group per combination."""
        await bind(ids.color, controls_media=True)
        store = MediaGroupStore(session)
        first, second, third = ids.media[:3]

        media = await store.sync_product_media(
            ids.product,
            [
                MediaSyncItem(first, {ids.color: ids.red}, sort_order=1, is_primary=True, is_group_primary=True),
                MediaSyncItem(second, {ids.color: ids.red}, sort_order=2),
                MediaSyncItem(third, {ids.color: ids.blue}, sort_order=3, is_group_primary=True),
            ],
        )

        assert [m.id for m in media] == [first, second, third]
        assert all(m.product_id == ids.product for m in media)
        assert media[0].media_group_id == media[1].media_group_id
        assert media[0].media_group_id != media[2].media_group_id
        assert [m.is_primary for m in media] == [True, False, False]

        views = await store.get_media_groups_for_product(ids.product)
        assert {str(v.group.key): [m.id for m in v.media] for v in views} == {
            f"{ids.color}:{ids.red}": [first, second],
            f"{ids.color}:{ids.blue}": [third],
        }

    @pytest.mark.asyncio
    async def test_product_level_media_uses_simple_group(self, session, ids) -> None:
        """Items without a combination go to the simple media group."""
        store = MediaGroupStore(session)

        await store.sync_product_media(ids.product, [MediaSyncItem(ids.media[0])])

        views = await store.get_media_groups_for_product(ids.product)
        assert len(views) == 1
        assert views[0].group.key.is_simple
        assert views[0].to_dict()["media"][0]["id"] == ids.media[0]

    @pytest.mark.asyncio
    async def test_two_primaries_rejected_without_writes(self, session, ids, bind) -> None:
        """Two global primaries fail the whole sync and linked media is untouched."""
        await bind(ids.color, controls_media=True)
        store = MediaGroupStore(session)
        await store.sync_product_media(
            ids.product,
            [
                MediaSyncItem(ids.media[0], {ids.color: ids.red}, sort_order=0, is_primary=True),
                MediaSyncItem(ids.media[1], {ids.color: ids.red}, sort_order=1, is_group_primary=True),
            ],
        )
        before = await media_state(store, ids.product)
        groups_before = [record.id for record in await store.get_groups_for_product(ids.product)]

        with pytest.raises(ConflictingStateError) as exc_info:
            await store.sync_product_media(
                ids.product,
                [
                    MediaSyncItem(ids.media[2], {ids.color: ids.blue}, is_primary=True),
                    MediaSyncItem(ids.media[3], {ids.color: ids.blue}, is_primary=True),
                ],
            )

        assert exc_info.value.details["media_ids"] == [ids.media[2], ids.media[3]]
        assert [row[0] for row in before] == [ids.media[0], ids.media[1]]
        assert await media_state(store, ids.product) == before
        assert [record.id for record in await store.get_groups_for_product(ids.product)] == groups_before
        for media_id in ids.media[2:]:
            assert (await store.media.get(media_id)).product_id is None

    @pytest.mark.asyncio
    async def test_two_group_primaries_in_one_group_rejected(self, session, ids, bind) -> None:
        """Each media group has at most one group primary."""
        await bind(ids.color, controls_media=True)

        with pytest.raises(ConflictingStateError):
            await MediaGroupStore(session).sync_product_media(
                ids.product,
                [
                    MediaSyncItem(ids.media[0], {ids.color: ids.red}, is_group_primary=True),
                    MediaSyncItem(ids.media[1], {ids.color: ids.red}, is_group_primary=True),
                ],
            )

    @pytest.mark.asyncio
    async def test_group_primaries_in_different_groups_allowed(self, session, ids, bind) -> None:
        """Group primaries of separate groups do not conflict."""
        await bind(ids.color, controls_media=True)

        media = await MediaGroupStore(session).sync_product_media(
            ids.product,
            [
                MediaSyncItem(ids.media[0], {ids.color: ids.red}, is_group_primary=True),
                MediaSyncItem(ids.media[1], {ids.color: ids.blue}, is_group_primary=True),
            ],
        )

        assert all(m.is_group_primary for m in media)

    @pytest.mark.asyncio
    async def test_repeated_media_rejected(self, session, ids) -> None:
        """A media ID may be listed once."""
        with pytest.raises(InvalidPayloadError):
            await MediaGroupStore(session).sync_product_media(
                ids.product,
                [MediaSyncItem(ids.media[0]), MediaSyncItem(ids.media[0], sort_order=1)],
            )

    @pytest.mark.asyncio
    async def test_orphans_are_unlinked(self, session, ids) -> None:
        """Media left out of the list loses its product link but is kept."""
        store = MediaGroupStore(session)
        await store.sync_product_media(
            ids.product,
            [MediaSyncItem(ids.media[0], is_primary=True), MediaSyncItem(ids.media[1])],
        )

        media = await store.sync_product_media(ids.product, [MediaSyncItem(ids.media[1])])

        assert [m.id for m in media] == [ids.media[1]]
        orphan = await session.get(Media, ids.media[0])
        assert orphan is not None
        assert orphan.product_id is None
        assert orphan.media_group_id is None
        assert orphan.is_primary is False

    @pytest.mark.asyncio
    async def test_missing_media_reported(self, session, ids) -> None:
        """Unknown media IDs fail the sync with one entry each."""
        with pytest.raises(PartialFailureError) as exc_info:
            await MediaGroupStore(session).sync_product_media(
                ids.product,
                [MediaSyncItem(ids.media[0]), MediaSyncItem(998), MediaSyncItem(999)],
            )
        assert [f["media_id"] for f in exc_info.value.details["failures"]] == [998, 999]

    @pytest.mark.asyncio
    async def test_foreign_media_rejected(self, session, ids) -> None:
        """Media owned by another product cannot be taken over."""
        with pytest.raises(ConflictingStateError):
            await MediaGroupStore(session).sync_product_media(
                ids.product, [MediaSyncItem(ids.foreign_media)]
            )

    @pytest.mark.asyncio
    async def test_non_media_attribute_rejected(self, session, ids, bind) -> None:
        """Combinations may only use media-controlling attributes."""
        await bind(ids.color, controls_pricing=True)

        with pytest.raises(InvalidCombinationError):
            await MediaGroupStore(session).sync_product_media(
                ids.product, [MediaSyncItem(ids.media[0], {ids.color: ids.red})]
            )


class TestMediaEdits:
    """Tests for single-row media edits."""

    @pytest.mark.asyncio
    async def test_set_primary_moves_the_flag(self, session, ids) -> None:
        """Only the chosen row stays primary."""
        store = MediaGroupStore(session)
        await store.sync_product_media(
            ids.product,
            [MediaSyncItem(ids.media[0], is_primary=True), MediaSyncItem(ids.media[1])],
        )

        await store.set_primary_media(ids.media[1])

        media = await store.get_media_for_product(ids.product)
        assert {m.id: m.is_primary for m in media} == {ids.media[0]: False, ids.media[1]: True}

    @pytest.mark.asyncio
    async def test_primary_moves_to_lower_id(self, session, ids) -> None:
        """Moving the flag backwards never leaves two primaries in one flush."""
        store = MediaGroupStore(session)
        await store.sync_product_media(
            ids.product,
            [MediaSyncItem(ids.media[0]), MediaSyncItem(ids.media[1], is_primary=True)],
        )

        await store.set_primary_media(ids.media[0])
        assert [m.is_primary for m in await store.get_media_for_product(ids.product)] == [True, False]

        await store.sync_product_media(
            ids.product,
            [MediaSyncItem(ids.media[0]), MediaSyncItem(ids.media[1], is_primary=True)],
        )
        assert [m.is_primary for m in await store.get_media_for_product(ids.product)] == [False, True]

    @pytest.mark.asyncio
    async def test_set_primary_on_unlinked_media(self, session, ids) -> None:
        """Unlinked media cannot be primary."""
        with pytest.raises(ConflictingStateError):
            await MediaGroupStore(session).set_primary_media(ids.media[3])

    @pytest.mark.asyncio
    async def test_reorder(self, session, ids) -> None:
        """Sort positions change display order."""
        store = MediaGroupStore(session)
        await store.sync_product_media(
            ids.product,
            [MediaSyncItem(ids.media[0], sort_order=1), MediaSyncItem(ids.media[1], sort_order=2)],
        )

        await store.reorder_media([MediaOrder(ids.media[0], 5), MediaOrder(ids.media[1], 0)])

        media = await store.get_media_for_product(ids.product)
        assert [m.id for m in media] == [ids.media[1], ids.media[0]]

    @pytest.mark.asyncio
    async def test_reorder_with_missing_media(self, session, ids) -> None:
        """A missing ID fails the reorder and nothing moves."""
        store = MediaGroupStore(session)

        with pytest.raises(PartialFailureError):
            await store.reorder_media([MediaOrder(ids.media[0], 5), MediaOrder(999, 0)])

        assert (await session.get(Media, ids.media[0])).sort_order == 0

    @pytest.mark.asyncio
    async def test_delete(self, session, ids) -> None:
        """Deleted media is gone; deleting again is NotFound."""
        store = MediaGroupStore(session)

        await store.delete_media(ids.media[2])

        with pytest.raises(NotFoundError):
            await store.delete_media(ids.media[2])


class TestMediaGroups:
    """Tests for media group hooks and variant lookup."""

    @pytest.mark.asyncio
    async def test_variant_without_media_attribute_gets_simple_group(self, session, ids, bind) -> None:
        """With no media-controlling attribute the simple group is created once."""
        await bind(ids.size)
        variant = await VariantRepository(session).get_by_key(
            ids.product, CombinationKey.from_mapping({ids.size: ids.small})
        )
        store = MediaGroupStore(session)

        group = await store.resolve_for_variant(variant.id)
        again = await store.resolve_for_variant(variant.id)

        assert group is not None
        assert group.id == again.id
        assert group.key.is_simple
        assert len(await store.get_groups_for_product(ids.product)) == 1

    @pytest.mark.asyncio
    async def test_variant_with_media_attribute_needs_existing_group(self, session, ids, bind) -> None:
        """A media-controlled variant resolves only to a group that exists."""
        await bind(ids.color, controls_media=True)
        await bind(ids.size)
        variant = await VariantRepository(session).get_by_key(
            ids.product, CombinationKey.from_mapping({ids.color: ids.blue, ids.size: ids.small})
        )
        store = MediaGroupStore(session)

        assert await store.resolve_for_variant(variant.id) is None

        await store.sync_product_media(ids.product, [MediaSyncItem(ids.media[0], {ids.color: ids.blue})])
        group = await store.resolve_for_variant(variant.id)

        assert group is not None
        assert group.key.as_dict() == {ids.color: ids.blue}

    @pytest.mark.asyncio
    async def test_replacing_groups_detaches_media(self, session, ids, bind) -> None:
        """Deleting media groups keeps the media on the product."""
        await bind(ids.color, controls_media=True)
        store = MediaGroupStore(session)
        await store.sync_product_media(
            ids.product,
            [MediaSyncItem(ids.media[0], {ids.color: ids.red}, is_group_primary=True)],
        )

        await store.delete_all_for_product(ids.product)

        media = await session.get(Media, ids.media[0])
        assert media.product_id == ids.product
        assert media.media_group_id is None
        assert media.is_group_primary is False


class TestPrimaryIndex:
    """Tests for the one-primary-per-product index."""

    @pytest.mark.asyncio
    async def test_second_primary_row_rejected(self, session, ids) -> None:
        """The store refuses two primary rows for one product."""
        first = await session.get(Media, ids.media[0])
        second = await session.get(Media, ids.media[1])
        for media in (first, second):
            media.product_id = ids.product
            media.is_primary = True

        with pytest.raises(IntegrityError):
            await session.flush()

    @pytest.mark.asyncio
    async def test_primaries_on_different_products_allowed(self, session, ids) -> None:
        """Each product keeps its own primary."""
        ours = await session.get(Media, ids.media[0])
        ours.product_id = ids.product
        ours.is_primary = True
        theirs = await session.get(Media, ids.foreign_media)
        theirs.is_primary = True

        await session.flush()

        assert (ours.is_primary, theirs.is_primary) == (True, True)
