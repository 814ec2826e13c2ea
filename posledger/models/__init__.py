# posledger/models/__init__.py
from .catalog import Ingredient, Product
from .ledger import Revenue, Expense, StockMovement, MovementType
from .people import Employee, Customer
from .order import Order, OrderStatus, FulfillmentType, PaymentMethod
from .applied_batch import AppliedBatch

# Tortoise model per REST collection name
COLLECTION_MODELS = {
    "ingredients": Ingredient,
    "products": Product,
    "revenues": Revenue,
    "expenses": Expense,
    "stock_movements": StockMovement,
    "employees": Employee,
    "customers": Customer,
    "orders": Order,
}

# Export all models
__all__ = [
    "Ingredient",
    "Product",
    "Revenue",
    "Expense",
    "StockMovement",
    "MovementType",
    "Employee",
    "Customer",
    "Order",
    "OrderStatus",
    "FulfillmentType",
    "PaymentMethod",
    "AppliedBatch",
    "COLLECTION_MODELS",
]
