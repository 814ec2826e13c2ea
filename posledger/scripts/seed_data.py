# posledger/scripts/seed_data.py
# Usage: python -m posledger.scripts.seed_data <account_id>
import asyncio
import sys

from posledger.core.db import close_db, init_db
from posledger.schemas.records import IngredientRecord, ProductRecord, RecipeLine
from posledger.services.sync_service import upsert_record


def sample_catalog(account_id: str):
    # Ids are global primary keys, so they carry the account
    def rid(name):
        return f"{account_id}-{name}"

    ingredients = [
        IngredientRecord(id=rid("bun"), name="Brioche Bun", category="Supplies", unit="un", cost_per_unit=1.50, stock_quantity=100, min_stock=20),
        IngredientRecord(id=rid("beef"), name="Ground Beef (Blend)", category="Supplies", unit="kg", cost_per_unit=35.00, stock_quantity=10, min_stock=5),
        IngredientRecord(id=rid("cheddar"), name="Cheddar Cheese", category="Supplies", unit="kg", cost_per_unit=45.00, stock_quantity=5, min_stock=2),
        IngredientRecord(id=rid("bacon"), name="Sliced Bacon", category="Supplies", unit="kg", cost_per_unit=40.00, stock_quantity=3, min_stock=1),
        IngredientRecord(id=rid("soda-can"), name="Soda Can", category="Drinks", unit="un", cost_per_unit=2.50, exit_price=6.00, stock_quantity=48, min_stock=12),
    ]
    products = [
        ProductRecord(
            id=rid("bacon-burger"),
            name="Classic Bacon Burger",
            description="Bun, 150g beef, cheddar, bacon",
            price=32.00,
            category="Burgers",
            recipe=[
                RecipeLine(ingredient_id=rid("bun"), quantity=1),
                RecipeLine(ingredient_id=rid("beef"), quantity=0.150),
                RecipeLine(ingredient_id=rid("cheddar"), quantity=0.030),
                RecipeLine(ingredient_id=rid("bacon"), quantity=0.040),
            ],
        ),
        ProductRecord(
            id=rid("soda"),
            name="Soda",
            description="350ml can",
            price=6.00,
            category="Drinks",
            recipe=[RecipeLine(ingredient_id=rid("soda-can"), quantity=1)],
        ),
    ]
    return ingredients, products


async def seed(account_id: str):
    ingredients, products = sample_catalog(account_id)

    # Insert-or-replace, so re-running resets the sample rows
    for ingredient in ingredients:
        await upsert_record("ingredients", account_id, ingredient)
    print(f"Ingredients seeded: {len(ingredients)}")

    for product in products:
        await upsert_record("products", account_id, product)
    print(f"Products seeded: {len(products)}")


async def main(account_id: str):
    await init_db()
    await seed(account_id)
    await close_db()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: python -m posledger.scripts.seed_data <account_id>")
    asyncio.run(main(sys.argv[1]))
