"""Tests for stock matrix reconciliation and stock quantities."""

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.catalog.models import AttributeValue, ProductStock
from storefront.catalog.repository import CombinationStockRepository, VariantRepository
from storefront.catalog.stock import StockReconciler, StockService
from storefront.domain.combination import CombinationKey
from storefront.domain.exceptions import (
    InsufficientStockError,
    InvalidCombinationError,
    InvalidPayloadError,
    NotFoundError,
)


async def deactivate(session, value_id: int) -> None:
    value = await session.get(AttributeValue, value_id)
    value.is_active = False
    await session.flush()


async def variant_for(session, product_id: int, combination: dict[int, int]):
    return await VariantRepository(session).get_by_key(product_id, CombinationKey.from_mapping(combination))


class TestReconcile:
    """Tests for StockReconciler."""

    @pytest.mark.asyncio
    async def test_matrix_covers_every_bound_attribute(self, session, ids, bind) -> None:
        """Color x Size gives four variants whichever facets they control."""
        await bind(ids.color, controls_pricing=True)
        await bind(ids.size, controls_weight=True)

        variants = await VariantRepository(session).list_for_product(ids.product)
        stock = await StockService(session).get_all_stock(ids.product)
        free_form = await CombinationStockRepository(session).list_for_product(ids.product)

        assert {v.key.serialize() for v in variants} == {
            f"{ids.color}:{c}|{ids.size}:{s}"
            for c in (ids.red, ids.blue)
            for s in (ids.small, ids.medium)
        }
        assert len(stock) == 4
        assert {s.variant_id for s in stock} == {v.id for v in variants}
        assert all(s.quantity == 0 and s.is_out_of_stock for s in stock)
        assert len(free_form) == 4
        assert all(set(r.combination) == {str(ids.color), str(ids.size)} for r in free_form)

    @pytest.mark.asyncio
    async def test_deactivated_value_drops_its_rows(self, session, ids, bind) -> None:
        """Deactivating Blue leaves the two Red rows with their quantities."""
        await bind(ids.color, controls_pricing=True)
        await bind(ids.size)
        red_small = await variant_for(session, ids.product, {ids.color: ids.red, ids.size: ids.small})
        await StockService(session).set_variant_stock(ids.product, red_small.id, 7)

        await deactivate(session, ids.blue)
        result = await StockReconciler(session).reconcile(ids.product)

        assert result.to_dict() == {"created": 0, "deleted": 2, "kept": 2}
        stock = await StockService(session).get_all_stock(ids.product)
        assert len(stock) == 2
        quantities = {s.variant_id: s.quantity for s in stock}
        assert quantities[red_small.id] == 7
        free_form = await CombinationStockRepository(session).list_for_product(ids.product)
        assert len(free_form) == 2

    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(self, session, ids, bind) -> None:
        """A second pass with nothing changed creates and deletes nothing."""
        await bind(ids.color)

        result = await StockReconciler(session).reconcile(ids.product)

        assert result.to_dict() == {"created": 0, "deleted": 0, "kept": 2}

    @pytest.mark.asyncio
    async def test_no_bindings_means_no_variants(self, session, ids) -> None:
        """A simple product has no variants."""
        result = await StockReconciler(session).reconcile(ids.product)

        assert result.to_dict() == {"created": 0, "deleted": 0, "kept": 0}
        assert await VariantRepository(session).list_for_product(ids.product) == []

    @pytest.mark.asyncio
    async def test_attribute_without_active_values_empties_matrix(self, session, ids, bind) -> None:
        """One empty axis leaves no combinations at all."""
        await bind(ids.color)
        await bind(ids.size)
        await deactivate(session, ids.small)
        await deactivate(session, ids.medium)

        assert await StockReconciler(session).target_keys(ids.product) == []
        result = await StockReconciler(session).reconcile(ids.product)
        assert result.deleted == 4
        assert await StockService(session).get_all_stock(ids.product) == []

    @pytest.mark.asyncio
    async def test_new_attribute_replaces_combinations(self, session, ids, bind) -> None:
        """Adding an attribute changes every full combination."""
        await bind(ids.color)

        await bind(ids.material)

        variants = await VariantRepository(session).list_for_product(ids.product)
        assert {v.key.serialize() for v in variants} == {
            f"{ids.color}:{ids.red}|{ids.material}:{ids.cotton}",
            f"{ids.color}:{ids.blue}|{ids.material}:{ids.cotton}",
        }

    @pytest.mark.asyncio
    async def test_unknown_product(self, session) -> None:
        """Reconciling a missing product raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await StockReconciler(session).reconcile(999)


class TestStockQuantities:
    """Tests for StockService."""

    @pytest.mark.asyncio
    async def test_simple_stock(self, session, ids) -> None:
        """Simple stock is created on first set and updated afterwards."""
        service = StockService(session)

        first = await service.set_simple_stock(ids.product, 5)
        second = await service.set_simple_stock(ids.product, 8)

        assert first.id == second.id
        assert second.variant_id is None
        assert second.is_out_of_stock is False
        level = await service.check_stock(ids.product)
        assert (level.available, level.quantity) == (True, 8)

    @pytest.mark.asyncio
    async def test_missing_row_reads_as_zero(self, session, ids) -> None:
        """check_stock on a product with no row reports nothing available."""
        level = await StockService(session).check_stock(ids.product)
        assert (level.available, level.quantity) == (False, 0)

    @pytest.mark.asyncio
    async def test_negative_quantity_rejected(self, session, ids) -> None:
        """Quantities may not be negative."""
        with pytest.raises(InvalidPayloadError):
            await StockService(session).set_simple_stock(ids.product, -1)

    @pytest.mark.asyncio
    async def test_deduct(self, session, ids) -> None:
        """Deduction lowers the quantity and flags an emptied row."""
        service = StockService(session)
        await service.set_simple_stock(ids.product, 3)

        stock = await service.deduct_stock(ids.product, None, 3)

        assert stock.quantity == 0
        assert stock.is_out_of_stock is True

    @pytest.mark.asyncio
    async def test_deduct_more_than_available(self, session, ids) -> None:
        """Over-deduction raises and leaves the quantity alone."""
        service = StockService(session)
        await service.set_simple_stock(ids.product, 2)

        with pytest.raises(InsufficientStockError) as exc_info:
            await service.deduct_stock(ids.product, None, 5)

        assert exc_info.value.details["available"] == 2
        assert exc_info.value.details["requested"] == 5
        assert (await service.check_stock(ids.product)).quantity == 2

    @pytest.mark.asyncio
    async def test_deduct_without_row(self, session, ids) -> None:
        """Deducting from a missing row raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await StockService(session).deduct_stock(ids.product, None, 1)

    @pytest.mark.asyncio
    async def test_deduct_non_positive_rejected(self, session, ids) -> None:
        """Deduction quantity must be positive."""
        with pytest.raises(InvalidPayloadError):
            await StockService(session).deduct_stock(ids.product, None, 0)

    @pytest.mark.asyncio
    async def test_variant_stock_updates_free_form_row(self, session, ids, bind) -> None:
        """Setting variant stock keeps the combination row in step."""
        await bind(ids.color)
        red = await variant_for(session, ids.product, {ids.color: ids.red})

        await StockService(session).set_variant_stock(ids.product, red.id, 4)
        await StockService(session).deduct_stock(ids.product, red.id, 1)

        rows = {
            r.combination_key: r.quantity
            for r in await CombinationStockRepository(session).list_for_product(ids.product)
        }
        assert rows == {f"{ids.color}:{ids.red}": 3, f"{ids.color}:{ids.blue}": 0}

    @pytest.mark.asyncio
    async def test_variant_of_other_product_rejected(self, session, ids, bind) -> None:
        """A variant ID must belong to the product in the request."""
        await bind(ids.color)
        red = await variant_for(session, ids.product, {ids.color: ids.red})

        with pytest.raises(NotFoundError):
            await StockService(session).set_variant_stock(ids.other_product, red.id, 4)


class TestStockByCombination:
    """Tests for set_stock_by_combination."""

    @pytest.mark.asyncio
    async def test_sets_matching_variant(self, session, ids, bind) -> None:
        """The full combination selects the variant's stock row."""
        await bind(ids.color)
        await bind(ids.size)
        service = StockService(session)

        stock = await service.set_stock_by_combination(
            ids.product, {str(ids.size): ids.medium, str(ids.color): ids.blue}, 6
        )

        blue_medium = await variant_for(session, ids.product, {ids.color: ids.blue, ids.size: ids.medium})
        assert stock.variant_id == blue_medium.id
        level = await service.check_stock(ids.product, blue_medium.id)
        assert level.quantity == 6

    @pytest.mark.asyncio
    async def test_partial_combination_rejected(self, session, ids, bind) -> None:
        """Every bound attribute must be named."""
        await bind(ids.color)
        await bind(ids.size)

        with pytest.raises(InvalidCombinationError):
            await StockService(session).set_stock_by_combination(ids.product, {ids.color: ids.red}, 1)

    @pytest.mark.asyncio
    async def test_unknown_combination(self, session, ids, bind) -> None:
        """A combination with no variant raises NotFoundError."""
        await bind(ids.color)
        await deactivate(session, ids.blue)
        await StockReconciler(session).reconcile(ids.product)

        with pytest.raises(NotFoundError):
            await StockService(session).set_stock_by_combination(ids.product, {ids.color: ids.blue}, 1)


class TestSimpleStockRow:
    """Tests for the one-simple-row-per-product index."""

    @pytest.mark.asyncio
    async def test_second_simple_row_rejected(self, session, ids) -> None:
        """A product cannot get two rows without a variant."""
        await StockService(session).set_simple_stock(ids.product, 5)
        session.add(ProductStock(product_id=ids.product, variant_id=None, quantity=1))

        with pytest.raises(IntegrityError):
            await session.flush()

    @pytest.mark.asyncio
    async def test_simple_rows_on_different_products_allowed(self, session, ids) -> None:
        """Every product may have its own simple row."""
        service = StockService(session)

        await service.set_simple_stock(ids.product, 5)
        await service.set_simple_stock(ids.other_product, 7)

        assert (await service.check_stock(ids.product)).quantity == 5
        assert (await service.check_stock(ids.other_product)).quantity == 7
