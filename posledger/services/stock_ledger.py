"""
Stock Ledger: current quantity per ingredient plus the append-only movement log.

Quantities are mutated in place; they are not derived by summing the log.
Entries, losses and counts clamp at zero. The sale path clamps only when the
caller asks for it (see `sale_floor`).
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from posledger.client.persistence import PersistenceAdapter, UnitOfWork
from posledger.models.ledger import MovementType
from posledger.models.order import PaymentMethod
from posledger.schemas.records import ExpenseRecord, IngredientRecord, StockMovementRecord

log = logging.getLogger("stock_ledger")


def sale_reason(tag: str) -> str:
    """Reason text of a sale movement; carries the order tag for legacy matching."""
    return f"sale order #{tag}"


def _require_ingredient(store: PersistenceAdapter, ingredient_id: str) -> IngredientRecord:
    ingredient = store.ingredients.get(ingredient_id)
    if ingredient is None:
        raise ValueError(f"Ingredient {ingredient_id} not found")
    return ingredient


async def add_stock_entry(
    store: PersistenceAdapter,
    ingredient_id: str,
    quantity: float,
    unit_cost: Optional[float] = None,
    reason: str = "",
) -> StockMovementRecord:
    """Receives stock: increments quantity, optionally overwrites the unit cost, logs an `entry`."""
    ingredient = _require_ingredient(store, ingredient_id)
    if quantity <= 0:
        raise ValueError("Entry quantity must be positive.")

    movement = StockMovementRecord(
        ingredient_id=ingredient.id,
        type=MovementType.ENTRY,
        quantity=quantity,
        reason=reason or None,
        cost=unit_cost if unit_cost is not None else ingredient.cost_per_unit,
    )
    async with store.transaction() as uow:
        uow.adjust(ingredient.id, quantity, floor=0)
        if unit_cost is not None:
            uow.update("ingredients", ingredient.id, cost_per_unit=unit_cost)
        uow.upsert("stock_movements", movement)

    log.info(f"Stock entry: {quantity} {ingredient.unit} of {ingredient.name}.")
    return movement


async def register_loss(
    store: PersistenceAdapter,
    ingredient_id: str,
    quantity: float,
    reason: str,
) -> StockMovementRecord:
    """
    Writes off stock: decrements quantity clamped at zero, logs a `loss`, and
    books the lost value (cost per unit x quantity) as a paid expense.
    """
    ingredient = _require_ingredient(store, ingredient_id)
    if quantity <= 0:
        raise ValueError("Loss quantity must be positive.")

    movement = StockMovementRecord(
        ingredient_id=ingredient.id,
        type=MovementType.LOSS,
        quantity=quantity,
        reason=reason,
        cost=ingredient.cost_per_unit,
    )
    expense = ExpenseRecord(
        amount=ingredient.cost_per_unit * quantity,
        category="Outros",
        description=f"Stock loss: {ingredient.name} ({reason})",
        is_recurring=False,
        status="paid", # Loss is immediate
        payment_method=PaymentMethod.CASH.value,
    )
    async with store.transaction() as uow:
        uow.adjust(ingredient.id, -quantity, floor=0)
        uow.upsert("stock_movements", movement)
        uow.upsert("expenses", expense)

    log.info(f"Stock loss: {quantity} {ingredient.unit} of {ingredient.name} ({reason}).")
    return movement


async def adjust_stock(
    store: PersistenceAdapter,
    ingredient_id: str,
    counted_quantity: float,
    reason: str = "Stock count",
) -> Optional[StockMovementRecord]:
    """Sets the counted quantity (clamped at zero) and logs the signed difference as an `adjustment`."""
    ingredient = _require_ingredient(store, ingredient_id)
    counted = max(0.0, counted_quantity)
    difference = counted - ingredient.stock_quantity
    if difference == 0:
        return None

    movement = StockMovementRecord(
        ingredient_id=ingredient.id,
        type=MovementType.ADJUSTMENT,
        quantity=difference,
        reason=reason,
        cost=ingredient.cost_per_unit,
    )
    async with store.transaction() as uow:
        # A count is an absolute observation, so it is written as one
        uow.update("ingredients", ingredient.id, stock_quantity=counted)
        uow.upsert("stock_movements", movement)
    return movement


# --- sale path (used by checkout and its reversal) ---

def sale_floor(allow_negative: bool) -> Optional[float]:
    return None if allow_negative else 0.0


def sale_deduction(current: float, requested: float, floor: Optional[float]) -> float:
    """Quantity a sale actually takes out of `current` stock."""
    if floor is None:
        return requested
    return min(requested, max(current - floor, 0.0))


def stage_sale_deduction(
    uow: UnitOfWork,
    ingredient: IngredientRecord,
    requested: float,
    deducted: float,
    floor: Optional[float],
    order_id: str,
    tag: str,
    date: datetime,
) -> StockMovementRecord:
    movement = StockMovementRecord(
        ingredient_id=ingredient.id,
        type=MovementType.SALE,
        quantity=deducted,
        date=date,
        reason=sale_reason(tag),
        cost=ingredient.cost_per_unit,
        order_id=order_id,
    )
    uow.adjust(ingredient.id, -requested, floor=floor)
    uow.upsert("stock_movements", movement)
    return movement


def stage_sale_restore(uow: UnitOfWork, ingredient_id: str, quantity: float) -> None:
    uow.adjust(ingredient_id, quantity)


def low_stock(store: PersistenceAdapter, ingredient_ids: Iterable[str]) -> List[IngredientRecord]:
    """Ingredients among `ingredient_ids` at or below their minimum stock."""
    flagged = []
    for ingredient_id in ingredient_ids:
        ingredient = store.ingredients.get(ingredient_id)
        if ingredient is not None and ingredient.stock_quantity <= ingredient.min_stock:
            log.warning(
                f"Low stock: {ingredient.name} at {ingredient.stock_quantity} {ingredient.unit} "
                f"(minimum {ingredient.min_stock})."
            )
            flagged.append(ingredient)
    return flagged
