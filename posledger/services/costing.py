from typing import Dict, Iterable

from posledger.schemas.records import IngredientRecord, ProductRecord


def product_cost(product: ProductRecord, ingredients: Iterable[IngredientRecord]) -> float:
    """Recipe cost of one unit. Ingredients that no longer exist cost nothing."""
    by_id = {i.id: i for i in ingredients}
    cost = 0.0
    for line in product.recipe:
        ingredient = by_id.get(line.ingredient_id)
        if ingredient is not None:
            cost += ingredient.cost_per_unit * line.quantity
    return cost


def product_margin(product: ProductRecord, ingredients: Iterable[IngredientRecord]) -> Dict[str, float]:
    cost = product_cost(product, ingredients)
    margin = product.price - cost
    percent = (margin / product.price * 100) if product.price else 0.0
    return {"cost": cost, "margin": margin, "margin_percent": percent}
