import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from posledger.client.persistence import PersistenceAdapter, Repository
from posledger.core.config import ALLOW_NEGATIVE_STOCK
from posledger.core.exceptions import OrderValidationError
from posledger.models.order import FulfillmentType
from posledger.schemas.records import (
    CustomerRecord,
    IngredientRecord,
    OrderItem,
    OrderRecord,
    ProductRecord,
    RevenueRecord,
)
from posledger.services.stock_ledger import low_stock, sale_deduction, sale_floor, stage_sale_deduction

log = logging.getLogger("order_processor")

TAG_LENGTH = 4

REVENUE_CATEGORY = {
    FulfillmentType.DELIVERY: "Delivery",
    FulfillmentType.TABLE: "Balcao",
}


def order_tag(order_id: str) -> str:
    """Short id fragment written into revenue descriptions and movement reasons."""
    return order_id[:TAG_LENGTH]


def revenue_description(order: OrderRecord) -> str:
    return f"Order #{order_tag(order.id)} - {order.customer_name}"


def validate_order(order: OrderRecord) -> None:
    if not order.items:
        raise OrderValidationError("Cart is empty.")
    if not order.customer_name.strip():
        raise OrderValidationError("Customer name is required.")
    for item in order.items:
        if item.quantity <= 0:
            raise OrderValidationError(f"Invalid quantity for {item.product_name or item.product_id}.")


def compute_consumption(items: Iterable[OrderItem], products: Repository[ProductRecord]) -> Dict[str, float]:
    """
    Per-ingredient total of recipe quantity x item quantity, read from the
    current recipes. Add-ons and complements never consume stock.
    """
    consumption: Dict[str, float] = defaultdict(float)
    for item in items:
        product = products.get(item.product_id)
        if product is None:
            log.warning(f"Product {item.product_id} ({item.product_name}) not found, no stock consumed for it.")
            continue
        for line in product.recipe:
            consumption[line.ingredient_id] += line.quantity * item.quantity
    return dict(consumption)


# --- Customer Directory ---

def find_customer_by_phone(store: PersistenceAdapter, phone: Optional[str]) -> Optional[CustomerRecord]:
    if not phone:
        return None
    return store.customers.find(lambda c: c.phone == phone)


def find_customer_by_name(store: PersistenceAdapter, name: str) -> Optional[CustomerRecord]:
    """Case-insensitive lookup used to prefill checkout."""
    wanted = name.strip().lower()
    if not wanted:
        return None
    return store.customers.find(lambda c: c.name.strip().lower() == wanted)


def merged_customer(existing: Optional[CustomerRecord], order: OrderRecord) -> CustomerRecord:
    """Customer row after this order: created with one order, or merged and bumped."""
    if existing is None:
        return CustomerRecord(
            name=order.customer_name,
            phone=order.customer_phone,
            address=order.address,
            reference=order.reference,
            last_order_date=order.date,
            total_orders=1,
        )

    changes = {
        "name": order.customer_name,
        "last_order_date": order.date,
        "total_orders": existing.total_orders + 1,
    }
    # Address and reference are only overwritten by a non-empty value
    if order.address:
        changes["address"] = order.address
    if order.reference:
        changes["reference"] = order.reference
    return existing.model_copy(update=changes)


def build_revenue(order: OrderRecord) -> RevenueRecord:
    return RevenueRecord(
        date=order.date,
        description=revenue_description(order),
        amount=order.total_amount,
        category=REVENUE_CATEGORY.get(order.delivery_type, "Outros"),
        payment_method=order.payment_method,
        order_id=order.id,
    )


def _plan_deductions(
    store: PersistenceAdapter,
    consumption: Dict[str, float],
    floor: Optional[float],
) -> List[Tuple[IngredientRecord, float, float]]:
    plan = []
    for ingredient_id, requested in consumption.items():
        ingredient = store.ingredients.get(ingredient_id)
        if ingredient is None:
            log.warning(f"Ingredient {ingredient_id} not found, skipping its deduction.")
            continue
        deducted = sale_deduction(ingredient.stock_quantity, requested, floor)
        if deducted < requested:
            log.warning(
                f"Not enough {ingredient.name}: {requested} requested, {ingredient.stock_quantity} in stock; "
                f"deducting {deducted}."
            )
        plan.append((ingredient, requested, deducted))
    return plan


async def process_order(
    store: PersistenceAdapter,
    order: OrderRecord,
    allow_negative_stock: Optional[bool] = None,
) -> OrderRecord:
    """
    Checkout. Writes the Order, upserts the Customer (orders with a phone only),
    appends one Revenue row and one `sale` movement per consumed ingredient,
    and deducts stock. Everything goes out as one unit of work.

    The quantities actually deducted are stored on the Order (`consumption`)
    so a later reversal restores exactly those, whatever happens to the recipes.
    """
    validate_order(order)
    if allow_negative_stock is None:
        allow_negative_stock = ALLOW_NEGATIVE_STOCK
    floor = sale_floor(allow_negative_stock)
    tag = order_tag(order.id)

    plan = _plan_deductions(store, compute_consumption(order.items, store.products), floor)
    order = order.model_copy(update={
        "consumption": {ingredient.id: deducted for ingredient, _, deducted in plan},
    })

    customer = None
    if order.customer_phone:
        customer = merged_customer(find_customer_by_phone(store, order.customer_phone), order)

    async with store.transaction() as uow:
        uow.upsert("orders", order)
        if customer is not None:
            uow.upsert("customers", customer)
        uow.upsert("revenues", build_revenue(order))
        for ingredient, requested, deducted in plan:
            stage_sale_deduction(uow, ingredient, requested, deducted, floor, order.id, tag, order.date)

    log.info(
        f"Order #{tag} processed: {order.total_amount:.2f} from {order.customer_name}, "
        f"{len(plan)} ingredient(s) deducted."
    )
    low_stock(store, [ingredient.id for ingredient, _, _ in plan])
    return order
