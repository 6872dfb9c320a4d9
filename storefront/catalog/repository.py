"""Repositories for catalog database operations.

Group values and variant combinations are loaded with a second
``WHERE parent_id IN (...)`` query and indexed by parent id, rather than
through ORM relationships, so every record handed to the services is a
parent row plus its plain (attribute_id, attribute_value_id) pairs.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.models import (
    Attribute,
    AttributeValue,
    Media,
    Product,
    ProductAttribute,
    ProductCombinationStock,
    ProductStock,
    ProductVariant,
    ProductVariantCombination,
)
from storefront.domain.combination import CombinationKey, Facet
from storefront.infrastructure.config import settings

G = TypeVar("G")


def chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


# ============================================================================
# Records
# ============================================================================


@dataclass
class GroupRecord(Generic[G]):
    """A group row together with its defining value pairs.

    Attributes:
        group: The ORM group row (price, weight or media).
        pairs: (attribute_id, attribute_value_id) rows defining the group.
    """

    group: G
    pairs: list[tuple[int, int]] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.group.id  # type: ignore[attr-defined]

    @property
    def key(self) -> CombinationKey:
        return CombinationKey.from_pairs(self.pairs)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "product_id": self.group.product_id,  # type: ignore[attr-defined]
            "combination": {str(a): v for a, v in self.key.pairs},
            **self.group.payload(),  # type: ignore[attr-defined]
        }


@dataclass
class VariantRecord:
    """A variant row together with its full combination."""

    variant: ProductVariant
    pairs: list[tuple[int, int]] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.variant.id

    @property
    def product_id(self) -> int:
        return self.variant.product_id

    @property
    def key(self) -> CombinationKey:
        return CombinationKey.from_pairs(self.pairs)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "is_active": self.variant.is_active,
            "combination": {str(a): v for a, v in self.key.pairs},
        }


# ============================================================================
# Product & Attribute Repositories
# ============================================================================


class ProductRepository:
    """Read access to the product records the engine hangs data from."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def get_by_id(self, product_id: int) -> Product | None:
        """Get product by ID."""
        return await self.session.get(Product, product_id)

    async def save(self, product: Product) -> Product:
        """Save a product to database."""
        self.session.add(product)
        await self.session.flush()
        return product


class AttributeRepository:
    """Read access to the attribute catalog."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_attributes(self, attribute_ids: Iterable[int]) -> dict[int, Attribute]:
        """Get attributes indexed by ID; missing IDs are simply absent."""
        ids = list(set(attribute_ids))
        if not ids:
            return {}
        result = await self.session.execute(select(Attribute).where(Attribute.id.in_(ids)))
        return {a.id: a for a in result.scalars().all()}

    async def get_values(self, value_ids: Iterable[int]) -> dict[int, AttributeValue]:
        """Get attribute values indexed by ID; missing IDs are simply absent."""
        ids = list(set(value_ids))
        if not ids:
            return {}
        result = await self.session.execute(
            select(AttributeValue).where(AttributeValue.id.in_(ids))
        )
        return {v.id: v for v in result.scalars().all()}

    async def get_active_values(
        self,
        attribute_ids: Iterable[int],
    ) -> dict[int, list[AttributeValue]]:
        """Get active values per attribute, ordered by sort order then ID.

        Attributes with no active values map to an empty list so callers can
        tell them apart from attributes they did not ask for.
        """
        ids = list(set(attribute_ids))
        values: dict[int, list[AttributeValue]] = {attribute_id: [] for attribute_id in ids}
        if not ids:
            return values
        result = await self.session.execute(
            select(AttributeValue)
            .where(
                AttributeValue.attribute_id.in_(ids),
                AttributeValue.is_active.is_(True),
            )
            .order_by(AttributeValue.sort_order, AttributeValue.id)
        )
        for value in result.scalars().all():
            values[value.attribute_id].append(value)
        return values


class BindingRepository:
    """ProductAttribute rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_product(self, product_id: int) -> list[ProductAttribute]:
        """Get all bindings of a product ordered by attribute ID."""
        result = await self.session.execute(
            select(ProductAttribute)
            .where(ProductAttribute.product_id == product_id)
            .order_by(ProductAttribute.attribute_id)
        )
        return list(result.scalars().all())

    async def get(self, product_id: int, attribute_id: int) -> ProductAttribute | None:
        """Get one binding."""
        result = await self.session.execute(
            select(ProductAttribute).where(
                ProductAttribute.product_id == product_id,
                ProductAttribute.attribute_id == attribute_id,
            )
        )
        return result.scalar_one_or_none()

    async def controlling_attribute_ids(self, product_id: int, facet: Facet) -> set[int]:
        """Attribute IDs whose binding controls ``facet`` for the product."""
        flag = getattr(ProductAttribute, facet.binding_flag)
        result = await self.session.execute(
            select(ProductAttribute.attribute_id).where(
                ProductAttribute.product_id == product_id,
                flag.is_(True),
            )
        )
        return set(result.scalars().all())

    async def save(self, binding: ProductAttribute) -> ProductAttribute:
        """Save a binding."""
        self.session.add(binding)
        await self.session.flush()
        return binding

    async def delete(self, binding: ProductAttribute) -> None:
        """Delete a binding."""
        await self.session.delete(binding)
        await self.session.flush()


# ============================================================================
# Group Repository
# ============================================================================


class GroupRepository(Generic[G]):
    """Generic persistence for a group table and its value table.

    Example usage:
        repo = GroupRepository(session, ProductPriceGroup, ProductPriceGroupValue)
        records = await repo.list_for_product(product_id)
    """

    def __init__(self, session: AsyncSession, group_model: type[G], value_model: type[Any]) -> None:
        """Initialize repository.

        Args:
            session: Async SQLAlchemy session.
            group_model: Group ORM class.
            value_model: Group value ORM class (must have group_id,
                attribute_id and attribute_value_id columns).
        """
        self.session = session
        self.group_model = group_model
        self.value_model = value_model

    async def _attach_values(self, groups: Sequence[G]) -> list[GroupRecord[G]]:
        ids = [g.id for g in groups]  # type: ignore[attr-defined]
        pairs: dict[int, list[tuple[int, int]]] = defaultdict(list)
        if ids:
            result = await self.session.execute(
                select(
                    self.value_model.group_id,
                    self.value_model.attribute_id,
                    self.value_model.attribute_value_id,
                ).where(self.value_model.group_id.in_(ids))
            )
            for group_id, attribute_id, value_id in result.all():
                pairs[group_id].append((attribute_id, value_id))
        return [GroupRecord(group=g, pairs=pairs[g.id]) for g in groups]  # type: ignore[attr-defined]

    async def list_for_product(self, product_id: int) -> list[GroupRecord[G]]:
        """Get every group of a product with its value pairs."""
        model: Any = self.group_model
        result = await self.session.execute(
            select(model).where(model.product_id == product_id).order_by(model.id)
        )
        return await self._attach_values(result.scalars().all())

    async def get(self, group_id: int) -> GroupRecord[G] | None:
        """Get one group with its value pairs."""
        group = await self.session.get(self.group_model, group_id)
        if group is None:
            return None
        return (await self._attach_values([group]))[0]

    async def create(
        self,
        product_id: int,
        key: CombinationKey,
        payload: dict[str, Any],
    ) -> GroupRecord[G]:
        """Insert a group row and its value rows.

        The parent row is flushed first to obtain its ID; the value rows go
        in the same transaction, so a failure on either leaves nothing behind
        once the session rolls back.
        """
        group = self.group_model(  # type: ignore[call-arg]
            product_id=product_id,
            combination_key=key.serialize(),
            **payload,
        )
        self.session.add(group)
        await self.session.flush()
        await self.insert_values(
            [
                {"group_id": group.id, "attribute_id": a, "attribute_value_id": v}  # type: ignore[attr-defined]
                for a, v in key.pairs
            ]
        )
        return GroupRecord(group=group, pairs=list(key.pairs))

    async def insert_values(self, rows: list[dict[str, int]]) -> None:
        """Batch-insert value rows in chunks to stay under bind-parameter limits."""
        for chunk in chunked(rows, settings.bulk_insert_chunk_size):
            await self.session.execute(insert(self.value_model), list(chunk))

    async def update_payload(self, group: G, payload: dict[str, Any]) -> G:
        """Overwrite payload fields in place."""
        for name, value in payload.items():
            setattr(group, name, value)
        await self.session.flush()
        return group

    async def delete_groups(self, group_ids: Iterable[int]) -> int:
        """Delete groups and their value rows.

        Returns:
            Number of deleted groups.
        """
        ids = list(group_ids)
        if not ids:
            return 0
        model: Any = self.group_model
        await self.session.execute(
            delete(self.value_model).where(self.value_model.group_id.in_(ids))
        )
        result = await self.session.execute(delete(model).where(model.id.in_(ids)))
        return result.rowcount or 0

    async def delete_for_product(self, product_id: int) -> int:
        """Delete every group of a product."""
        model: Any = self.group_model
        result = await self.session.execute(select(model.id).where(model.product_id == product_id))
        return await self.delete_groups(result.scalars().all())


# ============================================================================
# Variant Repository
# ============================================================================


class VariantRepository:
    """ProductVariant rows and their combination rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _attach_pairs(self, variants: Sequence[ProductVariant]) -> list[VariantRecord]:
        ids = [v.id for v in variants]
        pairs: dict[int, list[tuple[int, int]]] = defaultdict(list)
        if ids:
            result = await self.session.execute(
                select(
                    ProductVariantCombination.variant_id,
                    ProductVariantCombination.attribute_id,
                    ProductVariantCombination.attribute_value_id,
                ).where(ProductVariantCombination.variant_id.in_(ids))
            )
            for variant_id, attribute_id, value_id in result.all():
                pairs[variant_id].append((attribute_id, value_id))
        return [VariantRecord(variant=v, pairs=pairs[v.id]) for v in variants]

    async def get(self, variant_id: int) -> VariantRecord | None:
        """Get a variant with its full combination."""
        variant = await self.session.get(ProductVariant, variant_id)
        if variant is None:
            return None
        return (await self._attach_pairs([variant]))[0]

    async def list_for_product(self, product_id: int) -> list[VariantRecord]:
        """Get all variants of a product ordered by ID."""
        result = await self.session.execute(
            select(ProductVariant)
            .where(ProductVariant.product_id == product_id)
            .order_by(ProductVariant.id)
        )
        return await self._attach_pairs(result.scalars().all())

    async def get_by_key(self, product_id: int, key: CombinationKey) -> VariantRecord | None:
        """Get the variant whose full combination equals ``key``."""
        result = await self.session.execute(
            select(ProductVariant).where(
                ProductVariant.product_id == product_id,
                ProductVariant.combination_key == key.serialize(),
            )
        )
        variant = result.scalar_one_or_none()
        if variant is None:
            return None
        return (await self._attach_pairs([variant]))[0]

    async def create_many(self, product_id: int, keys: Sequence[CombinationKey]) -> list[VariantRecord]:
        """Insert one variant per key plus its combination rows."""
        variants = [
            ProductVariant(product_id=product_id, combination_key=key.serialize(), is_active=True)
            for key in keys
        ]
        if not variants:
            return []
        self.session.add_all(variants)
        await self.session.flush()
        rows = [
            {"variant_id": variant.id, "attribute_id": a, "attribute_value_id": v}
            for variant, key in zip(variants, keys)
            for a, v in key.pairs
        ]
        for chunk in chunked(rows, settings.bulk_insert_chunk_size):
            await self.session.execute(insert(ProductVariantCombination), list(chunk))
        return [VariantRecord(variant=v, pairs=list(k.pairs)) for v, k in zip(variants, keys)]

    async def delete_many(self, variant_ids: Iterable[int]) -> int:
        """Delete variants together with their combination and stock rows."""
        ids = list(variant_ids)
        if not ids:
            return 0
        await self.session.execute(
            delete(ProductVariantCombination).where(ProductVariantCombination.variant_id.in_(ids))
        )
        await self.session.execute(delete(ProductStock).where(ProductStock.variant_id.in_(ids)))
        result = await self.session.execute(delete(ProductVariant).where(ProductVariant.id.in_(ids)))
        return result.rowcount or 0


# ============================================================================
# Stock Repositories
# ============================================================================


class StockRepository:
    """ProductStock rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_product(self, product_id: int) -> list[ProductStock]:
        """Get every stock row of a product, simple row first."""
        result = await self.session.execute(
            select(ProductStock)
            .where(ProductStock.product_id == product_id)
            .order_by(ProductStock.variant_id.is_not(None), ProductStock.id)
        )
        return list(result.scalars().all())

    async def get(self, product_id: int, variant_id: int | None) -> ProductStock | None:
        """Get the stock row for a variant, or the simple row when ``variant_id`` is None."""
        condition = (
            ProductStock.variant_id.is_(None)
            if variant_id is None
            else ProductStock.variant_id == variant_id
        )
        result = await self.session.execute(
            select(ProductStock).where(ProductStock.product_id == product_id, condition)
        )
        return result.scalar_one_or_none()

    async def save(self, stock: ProductStock) -> ProductStock:
        """Save a stock row, refreshing its derived flag."""
        stock.refresh_out_of_stock()
        self.session.add(stock)
        await self.session.flush()
        return stock

    async def save_all(self, stocks: list[ProductStock]) -> list[ProductStock]:
        """Save several stock rows."""
        for stock in stocks:
            stock.refresh_out_of_stock()
        self.session.add_all(stocks)
        await self.session.flush()
        return stocks


class CombinationStockRepository:
    """Free-form ProductCombinationStock rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_product(self, product_id: int) -> list[ProductCombinationStock]:
        """Get every free-form stock row of a product."""
        result = await self.session.execute(
            select(ProductCombinationStock)
            .where(ProductCombinationStock.product_id == product_id)
            .order_by(ProductCombinationStock.id)
        )
        return list(result.scalars().all())

    async def create_many(self, product_id: int, keys: Sequence[CombinationKey]) -> None:
        """Insert zero-quantity rows for the given combinations."""
        self.session.add_all(
            [
                ProductCombinationStock(
                    product_id=product_id,
                    combination={str(a): v for a, v in key.pairs},
                    combination_key=key.serialize(),
                    quantity=0,
                )
                for key in keys
            ]
        )
        await self.session.flush()

    async def delete_many(self, row_ids: Iterable[int]) -> int:
        """Delete rows by ID."""
        ids = list(row_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            delete(ProductCombinationStock).where(ProductCombinationStock.id.in_(ids))
        )
        return result.rowcount or 0


# ============================================================================
# Media Repository
# ============================================================================


class MediaRepository:
    """Media rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, media_id: int) -> Media | None:
        """Get media by ID."""
        return await self.session.get(Media, media_id)

    async def get_many(self, media_ids: Iterable[int]) -> dict[int, Media]:
        """Get media indexed by ID; missing IDs are simply absent."""
        ids = list(set(media_ids))
        if not ids:
            return {}
        result = await self.session.execute(select(Media).where(Media.id.in_(ids)))
        return {m.id: m for m in result.scalars().all()}

    async def list_for_product(self, product_id: int) -> list[Media]:
        """Get media linked to a product, in display order."""
        result = await self.session.execute(
            select(Media)
            .where(Media.product_id == product_id)
            .order_by(Media.sort_order, Media.id)
        )
        return list(result.scalars().all())

    async def list_for_group(self, media_group_id: int) -> list[Media]:
        """Get media attached to one media group, in display order."""
        result = await self.session.execute(
            select(Media)
            .where(Media.media_group_id == media_group_id)
            .order_by(Media.sort_order, Media.id)
        )
        return list(result.scalars().all())

    async def detach_from_groups(self, group_ids: Iterable[int]) -> None:
        """Clear the group link of media attached to the given groups."""
        ids = list(group_ids)
        if not ids:
            return
        result = await self.session.execute(select(Media).where(Media.media_group_id.in_(ids)))
        for media in result.scalars().all():
            media.media_group_id = None
            media.is_group_primary = False
        await self.session.flush()

    async def flush(self) -> None:
        """Flush pending media changes."""
        await self.session.flush()

    async def delete(self, media: Media) -> None:
        """Delete a media row."""
        await self.session.delete(media)
        await self.session.flush()
