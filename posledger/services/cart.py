"""
POS cart: turns product picks into order lines and a cart into an Order
ready for `process_order`.
"""
from typing import Dict, List, Optional, Sequence

from posledger.core.exceptions import OrderValidationError
from posledger.models.order import FulfillmentType, OrderStatus, PaymentMethod
from posledger.schemas.records import OrderItem, OrderRecord, ProductRecord, new_id, utcnow


def _validate_complements(product: ProductRecord, selections: Dict[str, List[str]]) -> List[str]:
    groups = {c.title: c for c in product.complements}
    for title in selections:
        if title not in groups:
            raise OrderValidationError(f"{product.name} has no option group '{title}'.")

    chosen = []
    for group in product.complements:
        picked = selections.get(group.title) or []
        if group.required and not picked:
            raise OrderValidationError(f"Please select an option for: {group.title}")
        if len(picked) > group.max_selection:
            raise OrderValidationError(f"Choose at most {group.max_selection} option(s) for {group.title}.")
        unknown = [o for o in picked if o not in group.options]
        if unknown:
            raise OrderValidationError(f"Unknown option(s) for {group.title}: {', '.join(unknown)}")
        chosen.extend(picked)
    return chosen


def build_cart_item(
    product: ProductRecord,
    quantity: int = 1,
    selections: Optional[Dict[str, List[str]]] = None,
    add_on_ids: Sequence[str] = (),
    note: Optional[str] = None,
) -> OrderItem:
    """
    One cart line. `selections` maps complement group title to picked options;
    `add_on_ids` are ids from the product's add-ons. Unit price is the base
    price plus every add-on.
    """
    if quantity <= 0:
        raise OrderValidationError("Quantity must be positive.")
    complements = _validate_complements(product, selections or {})

    add_ons = []
    for add_on_id in add_on_ids:
        add_on = next((a for a in product.add_ons if a.id == add_on_id), None)
        if add_on is None:
            raise OrderValidationError(f"{product.name} has no add-on {add_on_id}.")
        add_ons.append(add_on)

    unit_price = product.price + sum(a.price for a in add_ons)
    return OrderItem(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit_price=unit_price,
        total=unit_price * quantity,
        selected_complements=complements,
        selected_add_ons=add_ons,
        note=note or None,
    )


def _same_line(a: OrderItem, b: OrderItem) -> bool:
    return (
        a.product_id == b.product_id
        and sorted(a.selected_complements) == sorted(b.selected_complements)
        and sorted(x.id for x in a.selected_add_ons) == sorted(x.id for x in b.selected_add_ons)
        and (a.note or "") == (b.note or "")
    )


def add_to_cart(cart: List[OrderItem], item: OrderItem) -> List[OrderItem]:
    """Merges into an identical line (same product, options and note) or appends."""
    for index, line in enumerate(cart):
        if _same_line(line, item):
            quantity = line.quantity + item.quantity
            merged = line.model_copy(update={"quantity": quantity, "total": line.unit_price * quantity})
            return cart[:index] + [merged] + cart[index + 1:]
    return cart + [item]


def update_quantity(cart: List[OrderItem], index: int, delta: int) -> List[OrderItem]:
    line = cart[index]
    quantity = line.quantity + delta
    if quantity <= 0:
        return cart[:index] + cart[index + 1:]
    updated = line.model_copy(update={"quantity": quantity, "total": line.unit_price * quantity})
    return cart[:index] + [updated] + cart[index + 1:]


def cart_total(cart: Sequence[OrderItem]) -> float:
    return sum(item.total for item in cart)


def build_order(
    cart: Sequence[OrderItem],
    customer_name: str,
    customer_phone: Optional[str] = None,
    delivery_type: FulfillmentType = FulfillmentType.PICKUP,
    payment_method: str = PaymentMethod.CASH.value,
    address: Optional[str] = None,
    reference: Optional[str] = None,
    change_for: Optional[float] = None,
) -> OrderRecord:
    if not cart:
        raise OrderValidationError("Cart is empty.")
    if not customer_name or not customer_name.strip():
        raise OrderValidationError("Customer name is required.")

    delivery = FulfillmentType(delivery_type) == FulfillmentType.DELIVERY
    return OrderRecord(
        id=new_id(),
        date=utcnow(),
        customer_name=customer_name.strip(),
        customer_phone=(customer_phone or "").strip() or None,
        delivery_type=delivery_type,
        address=address if delivery else None,
        reference=reference if delivery else None,
        payment_method=payment_method,
        # Change is only due on cash payments
        change_for=change_for if payment_method == PaymentMethod.CASH.value else None,
        items=list(cart),
        total_amount=cart_total(cart),
        status=OrderStatus.COMPLETED,
    )
