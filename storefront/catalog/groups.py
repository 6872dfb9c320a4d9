"""Keyed group stores.

One generic store holds the find-or-create, matching and replace logic for
every facet. Price and weight stores only add their payload type and
validation; the media store (see ``storefront.catalog.media``) layers its
primary-image rules on top.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, ClassVar, Generic, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.locks import product_locks
from storefront.catalog.models import (
    ProductPriceGroup,
    ProductPriceGroupValue,
    ProductWeightGroup,
    ProductWeightGroupValue,
)
from storefront.catalog.repository import (
    AttributeRepository,
    BindingRepository,
    GroupRecord,
    GroupRepository,
    ProductRepository,
    VariantRepository,
)
from storefront.domain.combination import CombinationKey, Facet
from storefront.domain.exceptions import (
    DomainError,
    InvalidCombinationError,
    InvalidPayloadError,
    NotFoundError,
    PartialFailureError,
)

logger = structlog.get_logger()

G = TypeVar("G")

Combination = CombinationKey | Mapping[Any, Any] | None

CENTS = Decimal("0.01")


def as_key(combination: Combination) -> CombinationKey:
    """Accept a key, a ``{attribute_id: value_id}`` map, or None."""
    if isinstance(combination, CombinationKey):
        return combination
    return CombinationKey.from_mapping(combination)


def to_money(field: str, value: Any, required: bool = True) -> Decimal | None:
    """Convert to a non-negative Decimal with two fractional digits."""
    if value is None:
        if required:
            raise InvalidPayloadError(field, "is required")
        return None
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise InvalidPayloadError(field, f"{value!r} is not a number") from None
    if not amount.is_finite():
        raise InvalidPayloadError(field, f"{value!r} is not a number")
    if amount < 0:
        raise InvalidPayloadError(field, "must not be negative")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


# ============================================================================
# Payloads
# ============================================================================


@dataclass(frozen=True)
class PricePayload:
    """Price numbers for a price group. ``cost`` is informational only."""

    price: Any
    cost: Any = 0
    sale_price: Any = None

    def to_columns(self) -> dict[str, Decimal | None]:
        """Validate and convert to column values.

        Raises:
            InvalidPayloadError: If a number is negative or sale_price > price.
        """
        price = to_money("price", self.price)
        sale_price = to_money("sale_price", self.sale_price, required=False)
        if sale_price is not None and price is not None and sale_price > price:
            raise InvalidPayloadError("sale_price", f"{sale_price} exceeds price {price}")
        return {
            "cost": to_money("cost", self.cost),
            "price": price,
            "sale_price": sale_price,
        }


@dataclass(frozen=True)
class WeightPayload:
    """Weight and optional dimensions for a weight group."""

    weight: Any
    length: Any = None
    width: Any = None
    height: Any = None

    def to_columns(self) -> dict[str, Decimal | None]:
        """Validate and convert to column values."""
        return {
            "weight": to_money("weight", self.weight),
            "length": to_money("length", self.length, required=False),
            "width": to_money("width", self.width, required=False),
            "height": to_money("height", self.height, required=False),
        }


@dataclass(frozen=True)
class GroupItem:
    """One entry of a bulk replace: a combination and its payload."""

    combination: Combination
    payload: Any = None


# ============================================================================
# Generic Store
# ============================================================================


class GroupStore(Generic[G]):
    """Find-or-create store for one facet's groups.

    Subclasses set ``facet``, ``group_model`` and ``value_model``.

    Example usage:
        store = PriceGroupStore(session)
        group = await store.find_or_create(
            product_id,
            {color_id: red_id},
            PricePayload(price="19.99"),
        )
    """

    facet: ClassVar[Facet]
    group_model: ClassVar[type]
    value_model: ClassVar[type]
    # Resubmitting an existing combination overwrites its payload
    updates_on_match: ClassVar[bool] = True

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session
        self.repository: GroupRepository[G] = GroupRepository(
            session, self.group_model, self.value_model
        )
        self.products = ProductRepository(session)
        self.attributes = AttributeRepository(session)
        self.bindings = BindingRepository(session)
        self.variants = VariantRepository(session)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def payload_columns(self, payload: Any) -> dict[str, Any]:
        """Validate a payload and return column values."""
        if payload is None:
            raise InvalidPayloadError(self.facet.value, "payload is required")
        return payload.to_columns()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def require_product(self, product_id: int) -> None:
        """Raise NotFoundError unless the product exists."""
        if await self.products.get_by_id(product_id) is None:
            raise NotFoundError("Product", product_id)

    async def validate_keys(self, product_id: int, keys: Sequence[CombinationKey]) -> None:
        """Check every key against the product's bindings and the attribute catalog.

        Raises:
            InvalidCombinationError: If an attribute is unbound, does not
                control this facet, or a value belongs to another attribute.
            NotFoundError: If an attribute value does not exist.
        """
        bindings = {b.attribute_id: b for b in await self.bindings.list_for_product(product_id)}
        values = await self.attributes.get_values(v for key in keys for v in key.value_ids)

        for key in keys:
            for attribute_id, value_id in key.pairs:
                binding = bindings.get(attribute_id)
                if binding is None:
                    raise InvalidCombinationError(
                        f"attribute {attribute_id} is not bound to product {product_id}",
                        product_id=product_id,
                        combination=key.as_dict(),
                    )
                if not getattr(binding, self.facet.binding_flag):
                    raise InvalidCombinationError(
                        f"attribute {attribute_id} does not control {self.facet.value}",
                        product_id=product_id,
                        combination=key.as_dict(),
                    )
                value = values.get(value_id)
                if value is None:
                    raise NotFoundError("AttributeValue", value_id, {"attribute_id": attribute_id})
                if value.attribute_id != attribute_id:
                    raise InvalidCombinationError(
                        f"value {value_id} does not belong to attribute {attribute_id}",
                        product_id=product_id,
                        combination=key.as_dict(),
                    )

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    async def match(self, product_id: int, combination: Combination) -> GroupRecord[G] | None:
        """Find the group whose combination equals ``combination`` exactly.

        Args:
            product_id: Product ID.
            combination: Key or ``{attribute_id: value_id}`` map.

        Returns:
            Matching group, or None.
        """
        key = as_key(combination)
        for record in await self.repository.list_for_product(product_id):
            if key.matches(record.pairs):
                return record
        return None

    async def find_or_create(
        self,
        product_id: int,
        combination: Combination,
        payload: Any = None,
    ) -> GroupRecord[G]:
        """Return the group for ``combination``, creating it if needed.

        When the group exists its payload is overwritten, so resubmitting a
        combination with new numbers never creates a second row.

        Args:
            product_id: Product ID.
            combination: Key or ``{attribute_id: value_id}`` map.
            payload: Facet payload.

        Returns:
            The found or created group.
        """
        key = as_key(combination)
        columns = self.payload_columns(payload)
        await self.require_product(product_id)
        await self.validate_keys(product_id, [key])

        async with product_locks.hold(self.session, product_id):
            return await self._find_or_create(product_id, key, columns)

    async def _find_or_create(
        self,
        product_id: int,
        key: CombinationKey,
        columns: dict[str, Any],
    ) -> GroupRecord[G]:
        existing = await self.match(product_id, key)
        if existing is not None:
            if columns and self.updates_on_match:
                await self.repository.update_payload(existing.group, columns)
                logger.info(
                    "Group payload updated",
                    facet=self.facet.value,
                    product_id=product_id,
                    group_id=existing.id,
                    combination=str(key),
                )
            return existing

        record = await self.repository.create(product_id, key, columns)
        logger.info(
            "Group created",
            facet=self.facet.value,
            product_id=product_id,
            group_id=record.id,
            combination=str(key),
        )
        return record

    async def create_simple(self, product_id: int, payload: Any = None) -> GroupRecord[G]:
        """Find or create the product's group with the empty combination."""
        return await self.find_or_create(product_id, CombinationKey.simple(), payload)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def facet_key_for_variant(self, variant_id: int) -> tuple[int, CombinationKey]:
        """Cut a variant's full combination down to this facet's attributes.

        Returns:
            (product_id, facet key).

        Raises:
            NotFoundError: If the variant does not exist.
        """
        variant = await self.variants.get(variant_id)
        if variant is None:
            raise NotFoundError("ProductVariant", variant_id)
        controlling = await self.bindings.controlling_attribute_ids(variant.product_id, self.facet)
        return variant.product_id, variant.key.restrict(controlling)

    async def resolve_for_variant(self, variant_id: int) -> GroupRecord[G] | None:
        """Find the group governing this facet for a variant.

        Returns None when no group matches; callers treat that as "not
        configured" rather than as an error.
        """
        product_id, key = await self.facet_key_for_variant(variant_id)
        return await self.match(product_id, key)

    async def get_groups_for_product(self, product_id: int) -> list[GroupRecord[G]]:
        """Get every group of a product with its combination."""
        return await self.repository.list_for_product(product_id)

    # ------------------------------------------------------------------
    # Replace
    # ------------------------------------------------------------------

    async def prepare(
        self,
        product_id: int,
        items: Sequence[GroupItem],
        operation: str,
    ) -> list[tuple[CombinationKey, dict[str, Any]]]:
        """Validate a batch and convert it to (key, columns) pairs.

        Every item is checked; failures are collected rather than stopping
        at the first one.

        Raises:
            PartialFailureError: If any item is invalid.
        """
        prepared: list[tuple[CombinationKey, dict[str, Any]]] = []
        failures: list[dict[str, Any]] = []
        seen: dict[str, int] = {}

        for index, item in enumerate(items):
            try:
                key = as_key(item.combination)
                columns = self.payload_columns(item.payload)
                await self.validate_keys(product_id, [key])
                serialized = key.serialize()
                if serialized in seen:
                    raise InvalidCombinationError(
                        f"combination repeats item {seen[serialized]}",
                        product_id=product_id,
                        combination=key.as_dict(),
                    )
                seen[serialized] = index
                prepared.append((key, columns))
            except DomainError as e:
                failures.append(
                    {"index": index, "error_code": e.error_code, "message": e.message}
                )

        if failures:
            raise PartialFailureError(f"{self.facet.value} group {operation}", failures)
        return prepared

    async def upsert_many(
        self,
        product_id: int,
        items: Sequence[GroupItem],
    ) -> list[GroupRecord[G]]:
        """Find-or-create every item, leaving groups not listed untouched.

        Raises:
            PartialFailureError: If any item is invalid; nothing is written.
        """
        await self.require_product(product_id)
        prepared = await self.prepare(product_id, items, "upsert")
        async with product_locks.hold(self.session, product_id):
            return [await self._find_or_create(product_id, key, columns) for key, columns in prepared]

    async def bulk_create(
        self,
        product_id: int,
        items: Sequence[GroupItem],
    ) -> list[GroupRecord[G]]:
        """Replace all groups of a product with ``items``.

        Every item is validated before anything is deleted. Group rows are
        inserted first, then all value rows in chunked batches.

        Raises:
            PartialFailureError: If any item is invalid; nothing is written.
        """
        await self.require_product(product_id)
        prepared = await self.prepare(product_id, items, "replace")

        async with product_locks.hold(self.session, product_id):
            await self._before_replace(product_id)
            deleted = await self.repository.delete_for_product(product_id)

            groups = [
                self.group_model(product_id=product_id, combination_key=key.serialize(), **columns)
                for key, columns in prepared
            ]
            self.session.add_all(groups)
            await self.session.flush()

            await self.repository.insert_values(
                [
                    {"group_id": group.id, "attribute_id": a, "attribute_value_id": v}
                    for group, (key, _) in zip(groups, prepared)
                    for a, v in key.pairs
                ]
            )

        logger.info(
            "Groups replaced",
            facet=self.facet.value,
            product_id=product_id,
            deleted=deleted,
            created=len(groups),
        )
        return [GroupRecord(group=g, pairs=list(k.pairs)) for g, (k, _) in zip(groups, prepared)]

    async def _before_replace(self, product_id: int) -> None:
        """Hook run under the lock before a product's groups are deleted."""

    async def delete_all_for_product(self, product_id: int) -> int:
        """Delete every group of a product."""
        async with product_locks.hold(self.session, product_id):
            await self._before_replace(product_id)
            deleted = await self.repository.delete_for_product(product_id)
        logger.info("Groups deleted", facet=self.facet.value, product_id=product_id, deleted=deleted)
        return deleted

    async def prune_stale(self, product_id: int) -> int:
        """Delete groups keyed on attributes that no longer control this facet.

        Run after bindings are detached or re-tagged.

        Returns:
            Number of pruned groups.
        """
        async with product_locks.hold(self.session, product_id):
            controlling = await self.bindings.controlling_attribute_ids(product_id, self.facet)
            stale = [
                record.id
                for record in await self.repository.list_for_product(product_id)
                if not record.key.attribute_ids <= controlling
            ]
            await self._before_prune(stale)
            pruned = await self.repository.delete_groups(stale)
        if pruned:
            logger.info(
                "Stale groups pruned",
                facet=self.facet.value,
                product_id=product_id,
                pruned=pruned,
            )
        return pruned

    async def _before_prune(self, group_ids: list[int]) -> None:
        """Hook run before stale groups are deleted."""


# ============================================================================
# Price & Weight Stores
# ============================================================================


class PriceGroupStore(GroupStore[ProductPriceGroup]):
    """Price groups (cost, price, sale_price)."""

    facet = Facet.PRICE
    group_model = ProductPriceGroup
    value_model = ProductPriceGroupValue


class WeightGroupStore(GroupStore[ProductWeightGroup]):
    """Weight groups (weight, length, width, height)."""

    facet = Facet.WEIGHT
    group_model = ProductWeightGroup
    value_model = ProductWeightGroupValue
