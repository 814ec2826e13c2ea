import logging
from typing import Dict, List, Optional

from posledger.client.persistence import PersistenceAdapter
from posledger.schemas.records import OrderRecord, RevenueRecord, StockMovementRecord
from posledger.services.order_processor import compute_consumption, find_customer_by_phone, order_tag
from posledger.services.stock_ledger import sale_reason, stage_sale_restore

log = logging.getLogger("order_reversal")


def find_order_revenue(store: PersistenceAdapter, order: OrderRecord) -> Optional[RevenueRecord]:
    """Linked by order_id; rows written before the link existed are matched by tag."""
    revenue = store.revenues.find(lambda r: r.order_id == order.id)
    if revenue is not None:
        return revenue
    tag = f"#{order_tag(order.id)}"
    return store.revenues.find(lambda r: r.order_id is None and tag in r.description)


def find_sale_movements(store: PersistenceAdapter, order: OrderRecord) -> List[StockMovementRecord]:
    reason = sale_reason(order_tag(order.id))
    return store.stock_movements.filter(
        lambda m: m.order_id == order.id or (m.order_id is None and reason in (m.reason or ""))
    )


def restored_quantities(store: PersistenceAdapter, order: OrderRecord) -> Dict[str, float]:
    if order.consumption is not None:
        return order.consumption
    # Legacy order: re-derive from today's recipes, which may differ from the sale
    log.info(f"Order #{order_tag(order.id)} has no consumption snapshot; recomputing from current recipes.")
    return compute_consumption(order.items, store.products)


async def delete_order(store: PersistenceAdapter, order_id: str) -> Optional[OrderRecord]:
    """
    Undoes `process_order`: restores stock, deletes the linked Revenue row and
    sale movements, decrements the Customer counter (floored at 0) and removes
    the Order, all in one unit of work. Returns None when the order is unknown.
    """
    order = store.orders.get(order_id)
    if order is None:
        log.info(f"Order {order_id} not found, nothing to reverse.")
        return None
    tag = order_tag(order.id)

    restore = {}
    for ingredient_id, quantity in restored_quantities(store, order).items():
        if store.ingredients.get(ingredient_id) is None:
            log.info(f"Ingredient {ingredient_id} no longer exists, not restoring {quantity}.")
            continue
        restore[ingredient_id] = quantity

    revenue = find_order_revenue(store, order)
    if revenue is None:
        log.info(f"No revenue row found for order #{tag}.")
    movements = find_sale_movements(store, order)

    customer = find_customer_by_phone(store, order.customer_phone)
    if order.customer_phone and customer is None:
        log.info(f"Customer {order.customer_phone} not found for order #{tag}.")

    async with store.transaction() as uow:
        for ingredient_id, quantity in restore.items():
            stage_sale_restore(uow, ingredient_id, quantity)
        if revenue is not None:
            uow.delete("revenues", revenue.id)
        for movement in movements:
            uow.delete("stock_movements", movement.id)
        if customer is not None:
            uow.update("customers", customer.id, total_orders=max(0, customer.total_orders - 1))
        uow.delete("orders", order.id)

    log.info(f"Order #{tag} reversed: {len(restore)} ingredient(s) restored, {len(movements)} movement(s) removed.")
    return order
