from .records import (
    COLLECTION_SCHEMAS,
    AddOn,
    Complement,
    CustomerRecord,
    EmployeeRecord,
    ExpenseRecord,
    IngredientRecord,
    OrderItem,
    OrderRecord,
    ProductRecord,
    RecipeLine,
    RevenueRecord,
    StockMovementRecord,
    new_id,
    utcnow,
    without_nulls,
)
from .sync import BatchOperation, BatchRequest, MigrationRequest, StockAdjustRequest, apply_stock_delta
from .response import ErrorDetail, ErrorResponse, SuccessResponse
