import pytest

from posledger.models.ledger import MovementType
from posledger.schemas.sync import apply_stock_delta
from posledger.services.stock_ledger import (
    add_stock_entry,
    adjust_stock,
    low_stock,
    register_loss,
    sale_deduction,
)


async def _server_ingredient(remote, ingredient_id):
    rows = await remote.fetch_all("ingredients")
    return next(row for row in rows if row["id"] == ingredient_id)


class TestStockEntry:
    @pytest.mark.asyncio
    async def test_entry_increments_and_overwrites_cost(self, catalog, remote):
        movement = await add_stock_entry(catalog, "beef", 5, unit_cost=36.0, reason="Supplier delivery")

        beef = catalog.ingredients.get("beef")
        assert beef.stock_quantity == 15
        assert beef.cost_per_unit == 36.0
        assert movement.type == MovementType.ENTRY
        assert movement.quantity == 5
        assert movement.cost == 36.0
        assert catalog.stock_movements.get(movement.id) is not None

        await catalog.drain()
        server_beef = await _server_ingredient(remote, "beef")
        assert server_beef["stock_quantity"] == 15
        assert server_beef["cost_per_unit"] == 36.0

    @pytest.mark.asyncio
    async def test_entry_without_cost_keeps_cost(self, catalog):
        await add_stock_entry(catalog, "bun", 10)
        assert catalog.ingredients.get("bun").cost_per_unit == 1.5
        assert catalog.ingredients.get("bun").stock_quantity == 110

    @pytest.mark.asyncio
    async def test_entry_rejects_non_positive_quantity(self, catalog):
        with pytest.raises(ValueError):
            await add_stock_entry(catalog, "beef", 0)
        assert len(catalog.stock_movements) == 0

    @pytest.mark.asyncio
    async def test_unknown_ingredient(self, catalog):
        with pytest.raises(ValueError, match="not found"):
            await add_stock_entry(catalog, "saffron", 1)


class TestRegisterLoss:
    @pytest.mark.asyncio
    async def test_loss_decrements_and_books_expense(self, catalog):
        movement = await register_loss(catalog, "cheddar", 1, "Expired")

        assert catalog.ingredients.get("cheddar").stock_quantity == 4
        assert movement.type == MovementType.LOSS
        assert movement.reason == "Expired"

        expenses = catalog.expenses.all()
        assert len(expenses) == 1
        assert expenses[0].amount == 45.0
        assert expenses[0].category == "Outros"
        assert expenses[0].status == "paid"
        assert expenses[0].payment_method == "Dinheiro"
        assert "Cheddar" in expenses[0].description

    @pytest.mark.asyncio
    async def test_loss_clamps_at_zero(self, catalog, remote):
        await register_loss(catalog, "bacon", 5, "Dropped tray")

        assert catalog.ingredients.get("bacon").stock_quantity == 0
        await catalog.drain()
        assert (await _server_ingredient(remote, "bacon"))["stock_quantity"] == 0


class TestAdjustStock:
    @pytest.mark.asyncio
    async def test_count_records_signed_difference(self, catalog):
        movement = await adjust_stock(catalog, "beef", 8)

        assert catalog.ingredients.get("beef").stock_quantity == 8
        assert movement.type == MovementType.ADJUSTMENT
        assert movement.quantity == -2

    @pytest.mark.asyncio
    async def test_count_clamps_at_zero(self, catalog):
        movement = await adjust_stock(catalog, "bacon", -4)

        assert catalog.ingredients.get("bacon").stock_quantity == 0
        assert movement.quantity == -3

    @pytest.mark.asyncio
    async def test_unchanged_count_writes_nothing(self, catalog):
        assert await adjust_stock(catalog, "bun", 100) is None
        assert len(catalog.stock_movements) == 0


class TestStockRules:
    def test_apply_stock_delta(self):
        assert apply_stock_delta(10, -0.15) == pytest.approx(9.85)
        assert apply_stock_delta(3, -5) == -2
        assert apply_stock_delta(3, -5, floor=0) == 0
        # Stock already below the floor is never raised by a decrement
        assert apply_stock_delta(-2, -1, floor=0) == -2
        assert apply_stock_delta(-2, 5, floor=0) == 3

    def test_sale_deduction(self):
        assert sale_deduction(10, 0.15, None) == 0.15
        assert sale_deduction(0.1, 0.15, None) == 0.15
        assert sale_deduction(0.1, 0.15, 0.0) == 0.1
        assert sale_deduction(-1, 0.15, 0.0) == 0

    @pytest.mark.asyncio
    async def test_low_stock(self, catalog, caplog):
        await adjust_stock(catalog, "beef", 5)

        flagged = low_stock(catalog, ["beef", "bun", "saffron"])
        assert [i.id for i in flagged] == ["beef"]
        assert "Low stock: Ground Beef" in caplog.text
