"""
Record schemas shared by the remote store and the session engine.

Field names are snake_case on the wire. Every schema also accepts the camelCase
keys written by older locally-cached snapshots, and defaults fill in what those
snapshots left out.
"""
import uuid
from datetime import date as date_type, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from posledger.models.ledger import MovementType
from posledger.models.order import FulfillmentType, OrderStatus, PaymentMethod


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def without_nulls(row: Dict[str, Any]) -> Dict[str, Any]:
    """Older cached shapes carry nulls where a default should apply."""
    return {k: v for k, v in row.items() if v is not None}


def by_field_name(schema, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Re-keys `data` by field name. A key may be the field name, its camelCase
    alias or a legacy name; unknown keys pass through untouched.
    """
    lookup = {}
    for name, field in schema.model_fields.items():
        keys = [name, field.alias]
        if isinstance(field.validation_alias, AliasChoices):
            keys.extend(choice for choice in field.validation_alias.choices if isinstance(choice, str))
        elif isinstance(field.validation_alias, str):
            keys.append(field.validation_alias)
        for key in keys:
            if key:
                lookup.setdefault(key, name)
    return {lookup.get(key, key): value for key, value in data.items()}


class RecordSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="after")
    def assume_utc(self):
        # Legacy snapshots hold naive ISO strings
        for name in type(self).model_fields:
            value = getattr(self, name)
            if isinstance(value, datetime) and value.tzinfo is None:
                setattr(self, name, value.replace(tzinfo=timezone.utc))
        return self


# --- Catalog ---

class IngredientRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    name: str = ""
    category: str = "Outros"
    unit: str = "un"
    cost_per_unit: float = 0
    exit_price: float = 0
    stock_quantity: float = 0
    min_stock: float = 0


class RecipeLine(RecordSchema):
    """Quantity of one ingredient consumed per unit of product sold."""
    ingredient_id: str
    quantity: float = 0


class Complement(RecordSchema):
    """Bounded-choice option group (e.g. doneness). Affects neither price nor stock."""
    title: str
    max_selection: int = 1
    options: List[str] = Field(default_factory=list)
    required: bool = False


class AddOn(RecordSchema):
    """Priced extra. Affects price, never stock."""
    id: str = Field(default_factory=new_id)
    name: str = ""
    price: float = 0


class ProductRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    name: str = ""
    description: str = ""
    price: float = 0
    category: str = "Outros"
    recipe: List[RecipeLine] = Field(
        default_factory=list, validation_alias=AliasChoices("recipe", "ingredients")
    )
    complements: List[Complement] = Field(default_factory=list)
    add_ons: List[AddOn] = Field(default_factory=list)


# --- Ledger ---

class RevenueRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    date: datetime = Field(default_factory=utcnow)
    description: str = ""
    amount: float = 0
    category: str = "Outros"
    payment_method: str = PaymentMethod.CASH.value
    order_id: Optional[str] = None


class ExpenseRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    date: datetime = Field(default_factory=utcnow)
    paid_date: Optional[datetime] = None
    amount: float = 0
    category: str = "Outros"
    description: str = ""
    is_recurring: bool = False
    status: str = "paid"
    payment_method: str = PaymentMethod.CASH.value
    employee_id: Optional[str] = None


class StockMovementRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    ingredient_id: str = ""
    type: MovementType = MovementType.ADJUSTMENT
    quantity: float = 0
    date: datetime = Field(default_factory=utcnow)
    reason: Optional[str] = None
    cost: Optional[float] = None
    order_id: Optional[str] = None


# --- People ---

class EmployeeRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    name: str = ""
    role: str = ""
    base_salary: float = Field(
        default=0, validation_alias=AliasChoices("base_salary", "baseSalary", "salary")
    )
    admission_date: Optional[date_type] = None
    pix_key: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    active: bool = True


class CustomerRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    name: str = ""
    phone: str = ""
    address: Optional[str] = None
    reference: Optional[str] = None
    last_order_date: Optional[datetime] = None
    total_orders: int = 0


# --- Orders ---

class OrderItem(RecordSchema):
    product_id: str
    product_name: str = ""
    quantity: int = 1
    unit_price: float = 0 # Base price + add-ons
    total: float = 0
    selected_complements: List[str] = Field(default_factory=list)
    selected_add_ons: List[AddOn] = Field(default_factory=list)
    note: Optional[str] = Field(default=None, validation_alias=AliasChoices("note", "observation"))


class OrderRecord(RecordSchema):
    id: str = Field(default_factory=new_id)
    date: datetime = Field(default_factory=utcnow)
    customer_name: str = ""
    customer_phone: Optional[str] = None
    delivery_type: FulfillmentType = FulfillmentType.PICKUP
    address: Optional[str] = None
    reference: Optional[str] = None
    payment_method: str = PaymentMethod.CASH.value
    change_for: Optional[float] = None
    items: List[OrderItem] = Field(default_factory=list)
    total_amount: float = 0
    status: OrderStatus = OrderStatus.COMPLETED
    consumption: Optional[Dict[str, float]] = None


# Record schema per REST collection name, in migration order
COLLECTION_SCHEMAS = {
    "ingredients": IngredientRecord,
    "products": ProductRecord,
    "revenues": RevenueRecord,
    "expenses": ExpenseRecord,
    "stock_movements": StockMovementRecord,
    "employees": EmployeeRecord,
    "customers": CustomerRecord,
    "orders": OrderRecord,
}
