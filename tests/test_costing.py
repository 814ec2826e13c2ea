import pytest

from posledger.schemas.records import IngredientRecord, ProductRecord, RecipeLine
from posledger.services.costing import product_cost, product_margin

INGREDIENTS = [
    IngredientRecord(id="bun", cost_per_unit=1.5),
    IngredientRecord(id="beef", cost_per_unit=35.0),
    IngredientRecord(id="cheddar", cost_per_unit=45.0),
    IngredientRecord(id="bacon", cost_per_unit=40.0),
]


@pytest.fixture
def burger():
    return ProductRecord(
        id="burger",
        price=32.0,
        recipe=[
            RecipeLine(ingredient_id="bun", quantity=1),
            RecipeLine(ingredient_id="beef", quantity=0.150),
            RecipeLine(ingredient_id="cheddar", quantity=0.030),
            RecipeLine(ingredient_id="bacon", quantity=0.040),
        ],
    )


def test_product_cost(burger):
    # 1.50 + 5.25 + 1.35 + 1.60
    assert product_cost(burger, INGREDIENTS) == pytest.approx(9.70)


def test_missing_ingredient_costs_nothing(burger):
    assert product_cost(burger, INGREDIENTS[:2]) == pytest.approx(6.75)


def test_product_margin(burger):
    margin = product_margin(burger, INGREDIENTS)
    assert margin["margin"] == pytest.approx(22.30)
    assert margin["margin_percent"] == pytest.approx(69.6875)


def test_free_product_margin():
    assert product_margin(ProductRecord(price=0), INGREDIENTS)["margin_percent"] == 0.0
